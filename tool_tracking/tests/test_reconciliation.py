import unittest

from sqlalchemy import update

from tool_tracking.errors import NotFoundError
from tool_tracking.models.tool_models import Tool, Unit
from tool_tracking.services.reconciliation_service import (
    derive_aggregate_status,
    reconcile_all,
    reconcile_tool_status,
)
from tool_tracking.tests.support import make_memory_engine, make_session_factory, seed_tool


class DeriveAggregateStatusTests(unittest.TestCase):
    def test_uniform_units_define_the_aggregate(self):
        self.assertEqual(
            derive_aggregate_status(["Under Maintenance", "Under Maintenance"], "Available"),
            "Under Maintenance",
        )

    def test_mixed_units_keep_current_value(self):
        self.assertEqual(derive_aggregate_status(["Available", "Not Available"], "Available"), "Available")
        self.assertEqual(
            derive_aggregate_status(["Available", "Under Maintenance"], "Not Available"),
            "Not Available",
        )

    def test_no_units_keep_current_value(self):
        self.assertEqual(derive_aggregate_status([], "Not Available"), "Not Available")
        self.assertIsNone(derive_aggregate_status([], None))


class ReconcileToolStatusTests(unittest.TestCase):
    def setUp(self):
        self.engine = make_memory_engine()
        self.db = make_session_factory(self.engine)()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _force_unit_status(self, tool_id, status):
        self.db.execute(update(Unit).where(Unit.ToolID == tool_id).values(Status=status))

    def test_reconcile_picks_up_uniform_unit_state(self):
        tool = seed_tool(self.db, "Plate Compactor", ["PC-1", "PC-2"])
        self._force_unit_status(tool.ToolID, "Not Available")

        self.assertEqual(reconcile_tool_status(self.db, tool.ToolID), "Not Available")
        self.assertEqual(self.db.get(Tool, tool.ToolID).Status, "Not Available")

    def test_reconcile_leaves_mixed_tool_alone(self):
        tool = seed_tool(self.db, "Tile Saw", ["TS-1", "TS-2"], tool_status="Under Maintenance")
        self.db.execute(update(Unit).where(Unit.SerialNumber == "TS-2").values(Status="Not Available"))
        before = self.db.get(Tool, tool.ToolID).UpdatedDate

        self.assertEqual(reconcile_tool_status(self.db, tool.ToolID), "Under Maintenance")
        self.assertEqual(self.db.get(Tool, tool.ToolID).UpdatedDate, before)

    def test_reconcile_unknown_tool(self):
        with self.assertRaises(NotFoundError):
            reconcile_tool_status(self.db, 999)

    def test_reconcile_all_repairs_every_tool(self):
        first = seed_tool(self.db, "Generator", ["GEN-1"], tool_status="Not Available")
        second = seed_tool(self.db, "Scaffold Tower", ["SCF-1", "SCF-2"], tool_status="Available")
        self._force_unit_status(second.ToolID, "Under Maintenance")

        results = reconcile_all(self.db)

        self.assertEqual(results, {first.ToolID: "Available", second.ToolID: "Under Maintenance"})


if __name__ == "__main__":
    unittest.main()
