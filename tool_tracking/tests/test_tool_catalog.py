import unittest
from datetime import date

from sqlalchemy import select

from tool_tracking.errors import InputValidationError, NotFoundError, PreconditionFailedError
from tool_tracking.models.tool_models import Assignment, Unit
from tool_tracking.services.assignment_service import checkin, checkout
from tool_tracking.services.maintenance_service import schedule_maintenance
from tool_tracking.services.tool_catalog_service import (
    get_unit_detail,
    get_unit_history,
    list_tools,
    serialize_tool,
    update_tool,
    utilization_summary,
)
from tool_tracking.tests.support import fake_project_resolver, make_memory_engine, make_session_factory, seed_tool


class ToolCatalogTests(unittest.TestCase):
    def setUp(self):
        self.engine = make_memory_engine()
        self.db = make_session_factory(self.engine)()
        self.saw = seed_tool(self.db, "Circular Saw", ["SAW-1", "SAW-2", "SAW-3"])
        self.mixer = seed_tool(self.db, "Concrete Mixer", ["MIX-1"])

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _serials(self, tool_id):
        return list(
            self.db.execute(
                select(Unit.SerialNumber).where(Unit.ToolID == tool_id).order_by(Unit.SerialNumber)
            ).scalars().all()
        )

    def _unit_status(self, serial):
        return self.db.execute(select(Unit.Status).where(Unit.SerialNumber == serial)).scalar()

    def test_list_tools_search_and_status(self):
        self.assertEqual([tool.ToolName for tool in list_tools(self.db)], ["Circular Saw", "Concrete Mixer"])
        self.assertEqual([tool.ToolID for tool in list_tools(self.db, search="mixer")], [self.mixer.ToolID])
        self.assertEqual([tool.ToolID for tool in list_tools(self.db, search="SAW-2")], [self.saw.ToolID])

        checkout(self.db, "MIX-1", "P1", date(2024, 1, 1), project_resolver=fake_project_resolver)
        self.assertEqual([tool.ToolID for tool in list_tools(self.db, status="NotAvailable")], [self.mixer.ToolID])

    def test_serialize_tool_counts_units(self):
        payload = serialize_tool(list_tools(self.db, search="Circular")[0], include_units=True)
        self.assertEqual(payload["unitCount"], 3)
        self.assertEqual([unit["serialNumber"] for unit in payload["units"]], ["SAW-1", "SAW-2", "SAW-3"])

    def test_shrink_removes_trailing_available_units(self):
        tool = update_tool(self.db, self.saw.ToolID, quantity=1)
        self.assertEqual(tool.Quantity, 1)
        self.assertEqual(self._serials(self.saw.ToolID), ["SAW-1"])

    def test_shrink_refuses_units_in_use(self):
        checkout(self.db, "SAW-3", "P1", date(2024, 1, 1), project_resolver=fake_project_resolver)
        with self.assertRaises(PreconditionFailedError):
            update_tool(self.db, self.saw.ToolID, quantity=2)
        self.assertEqual(self._serials(self.saw.ToolID), ["SAW-1", "SAW-2", "SAW-3"])

    def test_shrink_refuses_units_held_by_repair(self):
        schedule_maintenance(self.db, "SAW-2", "Repair", date(2024, 2, 1))
        with self.assertRaises(PreconditionFailedError):
            update_tool(self.db, self.saw.ToolID, quantity=1)

    def test_shrink_refuses_units_with_planned_work(self):
        schedule_maintenance(self.db, "SAW-3", "Inspection", date(2024, 2, 1))
        with self.assertRaises(PreconditionFailedError):
            update_tool(self.db, self.saw.ToolID, quantity=2)
        self.assertEqual(self._serials(self.saw.ToolID), ["SAW-1", "SAW-2", "SAW-3"])

    def test_grow_requires_exact_new_serials(self):
        with self.assertRaises(InputValidationError):
            update_tool(self.db, self.saw.ToolID, quantity=5, new_serial_numbers=["SAW-4"])
        with self.assertRaises(InputValidationError):
            update_tool(self.db, self.saw.ToolID, quantity=5, new_serial_numbers=["SAW-4", "SAW-4"])
        with self.assertRaises(InputValidationError):
            update_tool(self.db, self.saw.ToolID, quantity=4, new_serial_numbers=["MIX-1"])
        with self.assertRaises(InputValidationError):
            update_tool(self.db, self.saw.ToolID, quantity=3, new_serial_numbers=["SAW-9"])

        tool = update_tool(self.db, self.saw.ToolID, quantity=4, new_serial_numbers=["SAW-4"])
        self.assertEqual(tool.Quantity, 4)
        self.assertEqual(self._serials(self.saw.ToolID), ["SAW-1", "SAW-2", "SAW-3", "SAW-4"])

    def test_edit_fields_keeps_unit_statuses(self):
        checkout(self.db, "MIX-1", "P1", date(2024, 1, 1), project_resolver=fake_project_resolver)
        tool = update_tool(
            self.db,
            self.mixer.ToolID,
            name="Drum Mixer",
            condition_notes="new drum fitted",
        )
        self.assertEqual(tool.ToolName, "Drum Mixer")
        self.assertEqual(tool.ConditionNotes, "new drum fitted")
        self.assertIsNone(tool.LastMaintenance)
        self.assertEqual(self._unit_status("MIX-1"), "Not Available")
        self.assertEqual(tool.Status, "Not Available")

    def test_update_validation_and_missing_tool(self):
        with self.assertRaises(InputValidationError):
            update_tool(self.db, self.saw.ToolID, name="  ")
        with self.assertRaises(InputValidationError):
            update_tool(self.db, self.saw.ToolID, quantity=-1)
        with self.assertRaises(NotFoundError):
            update_tool(self.db, 999, name="Ghost")

    def test_unit_detail_by_id_and_serial(self):
        assignment = checkout(self.db, "SAW-1", "P1", date(2024, 1, 1), project_resolver=fake_project_resolver)
        schedule = schedule_maintenance(self.db, "SAW-1", "Inspection", date(2024, 3, 1))

        detail = get_unit_detail(self.db, "SAW-1", project_lookup=fake_project_resolver)
        self.assertEqual(detail["unit"]["status"], "Not Available")
        self.assertEqual(detail["tool"]["toolName"], "Circular Saw")
        self.assertEqual(detail["currentAssignment"]["assignmentID"], assignment.AssignmentID)
        self.assertEqual(detail["currentAssignment"]["project"]["name"], "Greenview Residence")
        self.assertEqual(detail["pendingMaintenance"]["scheduleID"], schedule.ScheduleID)

        by_id = get_unit_detail(self.db, detail["unit"]["unitID"])
        self.assertIsNone(by_id["currentAssignment"]["project"])

        idle = get_unit_detail(self.db, "SAW-2")
        self.assertIsNone(idle["currentAssignment"])
        self.assertIsNone(idle["pendingMaintenance"])

    def test_unit_history_lists_everything(self):
        first = checkout(self.db, "SAW-1", "P1", date(2024, 1, 1), project_resolver=fake_project_resolver)
        checkin(self.db, first.AssignmentID, date(2024, 1, 3))
        second = checkout(self.db, "SAW-1", "P2", date(2024, 2, 1), project_resolver=fake_project_resolver)
        schedule_maintenance(self.db, "SAW-1", "Routine", date(2024, 3, 1))

        history = get_unit_history(self.db, "SAW-1")
        self.assertEqual(
            [item["assignmentID"] for item in history["assignments"]],
            [second.AssignmentID, first.AssignmentID],
        )
        self.assertEqual(len(history["maintenance"]), 1)
        self.assertEqual(len(self.db.execute(select(Assignment)).scalars().all()), 2)

    def test_utilization_summary(self):
        checkout(self.db, "SAW-1", "P1", date(2024, 1, 1), project_resolver=fake_project_resolver)
        schedule_maintenance(self.db, "SAW-2", "Repair", date(2024, 2, 1))

        summary = utilization_summary(self.db)
        saw = next(item for item in summary["tools"] if item["toolID"] == self.saw.ToolID)
        self.assertEqual((saw["available"], saw["assigned"], saw["maintenance"], saw["total"]), (1, 1, 1, 3))
        self.assertEqual(summary["totals"]["total"], 4)
        self.assertEqual(summary["totals"]["utilizationRate"], 0.25)


if __name__ == "__main__":
    unittest.main()
