import unittest

from tool_tracking.models.statuses import (
    MAINTENANCE_TRANSITIONS,
    MaintenanceStatus,
    MaintenanceType,
    normalize_status,
    parse_maintenance_status,
    parse_maintenance_type,
)


class StatusParsingTests(unittest.TestCase):
    def test_aliases_map_to_stored_values(self):
        self.assertEqual(normalize_status("NotAvailable"), "Not Available")
        self.assertEqual(normalize_status(" UnderMaintenance "), "Under Maintenance")
        self.assertEqual(normalize_status("Returned"), "Returned")
        self.assertEqual(normalize_status(None), "")

    def test_parse_maintenance_values(self):
        self.assertEqual(parse_maintenance_status("InProgress"), MaintenanceStatus.IN_PROGRESS)
        self.assertEqual(parse_maintenance_status(MaintenanceStatus.CANCELLED), MaintenanceStatus.CANCELLED)
        self.assertIsNone(parse_maintenance_status("Paused"))
        self.assertEqual(parse_maintenance_type(" repair "), MaintenanceType.REPAIR)
        self.assertIsNone(parse_maintenance_type(None))

    def test_scheduled_is_never_a_target(self):
        for targets in MAINTENANCE_TRANSITIONS.values():
            self.assertNotIn(MaintenanceStatus.SCHEDULED, targets)


if __name__ == "__main__":
    unittest.main()
