"""
Maintenance Intake — Assignment Gate

Decides whether the submitting actor may assign the work order that was
just dispatched. Actors are resolved once by an AuthorizationProvider
into a capability set and role set; the gate only compares exact,
case-folded names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from intake.settings import AssignmentSettings


@dataclass(frozen=True)
class Actor:
    actor_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    capabilities: frozenset[str] = field(default_factory=frozenset)

    @staticmethod
    def anonymous() -> Actor:
        return Actor(actor_id="")


class AuthorizationProvider(Protocol):
    def resolve(self, actor_id: str) -> Actor: ...


class StaticAuthorization:
    """
    Actor table from config:

        authorization:
          actors:
            u-12: {roles: [technician]}
            u-40: {roles: [Supervisor], capabilities: [work_orders.assign]}

    Unknown actors resolve to an actor with no roles or capabilities.
    """

    def __init__(self, actors: dict[str, dict[str, Any]] | None = None):
        self._actors = actors or {}

    def resolve(self, actor_id: str) -> Actor:
        entry = self._actors.get(actor_id) or {}
        return Actor(
            actor_id=actor_id,
            roles=frozenset(str(r).casefold() for r in entry.get("roles", []) or []),
            capabilities=frozenset(str(c).casefold() for c in entry.get("capabilities", []) or []),
        )


class AssignmentGate:

    def __init__(self, settings: AssignmentSettings | None = None):
        settings = settings or AssignmentSettings()
        self.capability = settings.capability.casefold()
        self.supervisory_roles = frozenset(r.casefold() for r in settings.supervisory_roles)

    def may_auto_assign(self, actor: Actor) -> bool:
        if self.capability in {c.casefold() for c in actor.capabilities}:
            return True
        return any(r.casefold() in self.supervisory_roles for r in actor.roles)
