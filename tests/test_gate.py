"""
Maintenance Intake — Assignment Gate Tests

Capability or exact supervisory role, case-folded. No substring matching.
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from intake.gate import Actor, AssignmentGate, StaticAuthorization
from intake.settings import AssignmentSettings

ACTORS = {
    "tech": {"roles": ["technician"]},
    "boss": {"roles": ["SUPERVISOR"]},
    "planner": {"roles": ["planner"], "capabilities": ["Work_Orders.Assign"]},
    "assistant": {"roles": ["supervisor-assistant", "sub-lead"]},
}


class TestStaticAuthorization(unittest.TestCase):

    def test_resolves_and_casefolds(self):
        actor = StaticAuthorization(ACTORS).resolve("boss")
        self.assertEqual(actor.actor_id, "boss")
        self.assertEqual(actor.roles, frozenset({"supervisor"}))

    def test_unknown_actor_has_nothing(self):
        actor = StaticAuthorization(ACTORS).resolve("ghost")
        self.assertEqual(actor.roles, frozenset())
        self.assertEqual(actor.capabilities, frozenset())


class TestAssignmentGate(unittest.TestCase):

    def setUp(self):
        self.auth = StaticAuthorization(ACTORS)
        self.gate = AssignmentGate()

    def test_capability_grants(self):
        self.assertTrue(self.gate.may_auto_assign(self.auth.resolve("planner")))

    def test_supervisory_role_grants(self):
        self.assertTrue(self.gate.may_auto_assign(self.auth.resolve("boss")))

    def test_plain_technician_denied(self):
        self.assertFalse(self.gate.may_auto_assign(self.auth.resolve("tech")))

    def test_no_substring_matching(self):
        self.assertFalse(self.gate.may_auto_assign(self.auth.resolve("assistant")))

    def test_anonymous_denied(self):
        self.assertFalse(self.gate.may_auto_assign(Actor.anonymous()))

    def test_each_default_role(self):
        for role in ("admin", "supervisor", "coordinator", "manager", "foreman", "lead"):
            actor = Actor("x", roles=frozenset({role.upper()}))
            self.assertTrue(self.gate.may_auto_assign(actor), role)

    def test_custom_settings(self):
        gate = AssignmentGate(AssignmentSettings(capability="wo.dispatch",
                                                 supervisory_roles=("planner",)))
        self.assertTrue(gate.may_auto_assign(self.auth.resolve("planner")))
        self.assertFalse(gate.may_auto_assign(self.auth.resolve("boss")))
        self.assertTrue(gate.may_auto_assign(Actor("y", capabilities=frozenset({"WO.DISPATCH"}))))


if __name__ == "__main__":
    unittest.main()
