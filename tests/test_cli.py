"""
Maintenance Intake — CLI and Catalog Loading Tests

Runs intake.cli.main() against a temp config, catalog and database.
"""

import io
import json
import logging
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from engine.logging import ROOT_LOGGER
from intake.catalog import load_catalog
from intake.cli import main

CONFIG = """
catalog:
  path: catalog.yaml
authorization:
  actors:
    u-40:
      roles: [Supervisor]
logging:
  level: WARNING
"""

CATALOG = """
assets:
  - id: 7
    name: Hydraulic press 7
    criticality: critical
    components:
      - id: 70
        name: Main pump
        subcomponents:
          - id: 701
            name: Shaft seal
      - id: 71
        name: Cylinder
"""


class TestLoadCatalog(unittest.TestCase):

    def test_from_yaml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "catalog.yaml"
            path.write_text(CATALOG)
            catalog = load_catalog(str(path))
        self.assertEqual(len(catalog), 1)
        asset = catalog.get_asset(7)
        self.assertTrue(asset.is_critical)
        self.assertEqual(asset.foreign_components([70, 71, 701]), [701])
        self.assertEqual(asset.foreign_subcomponents([701, 70]), [70])
        self.assertIsNone(catalog.get_asset(8))

    def test_sample_catalog(self):
        catalog = load_catalog(os.path.join(_base, "catalog.yaml"))
        self.assertIsNotNone(catalog.get_asset(7))
        self.assertIsNotNone(catalog.get_asset(12))


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        (root / "catalog.yaml").write_text(CATALOG)
        self.config = root / "intake.yaml"
        self.config.write_text(CONFIG)
        self.db = str(root / "intake.db")

    def tearDown(self):
        root = logging.getLogger(ROOT_LOGGER)
        root.handlers.clear()
        root.propagate = True
        self.tmp.cleanup()

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            main(["--config", str(self.config), "--db", self.db, *argv])
        return out.getvalue()

    def submit(self, *extra, **fields):
        raw = {"assetId": 7, "title": "Pump leaking oil", "symptomTagIds": [4]}
        raw.update(fields)
        return json.loads(self.run_cli("submit", "--input", json.dumps(raw),
                                       "--actor", "u-40", *extra))

    def test_submit_and_link(self):
        created = self.submit()
        root_id = created["occurrence"]["id"]
        self.assertTrue(created["mayAssign"])
        self.assertEqual(created["workOrder"]["priority"], "high")

        dup = self.submit()
        self.assertTrue(dup["hasDuplicates"])
        linked = self.submit("--link", root_id, "--token", dup["resumeToken"])
        self.assertEqual(linked["reportCount"], 2)

        shown = json.loads(self.run_cli("show", root_id))
        self.assertEqual([e["kind"] for e in shown["history"]],
                         ["reported", "dispatched", "linked"])
        stats = json.loads(self.run_cli("stats"))
        self.assertEqual(stats["linked_reports"], 1)

    def test_force(self):
        self.submit()
        forced = self.submit("--force")
        self.assertIn("occurrence", forced)
        self.assertIn("Occurrences (2)", self.run_cli("list", "--asset", "7"))

    def test_intake_error_exit_code(self):
        with self.assertRaises(SystemExit) as ctx:
            self.submit(title="abc")
        self.assertEqual(ctx.exception.code, 1)

    def test_close_and_merge(self):
        root_id = self.submit()["occurrence"]["id"]
        obs_id = self.submit("--force", isObservation=True)["occurrence"]["id"]
        out = self.run_cli("merge", obs_id, "--into", root_id, "--actor", "u-40")
        self.assertIn("reports: 2", out)

        other = self.submit("--force", isObservation=True, title="Cylinder creeping down")
        out = self.run_cli("close", other["occurrence"]["id"], "--note", "within tolerance")
        self.assertIn("Closed:", out)

        ledger = self.run_cli("ledger", "--asset", "7")
        self.assertIn("merge_occurrence", ledger)
        self.assertIn("close_observation", ledger)


if __name__ == "__main__":
    unittest.main()
