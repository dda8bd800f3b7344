"""Tests for parsing backend JSON into typed records."""

import json
import os
import sys
import unittest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.types import (
    UDF_COUNT,
    ActivityLog,
    Alert,
    Component,
    Device,
    Incident,
    JobResult,
    PageDetails,
    QuickJob,
    Site,
    SophosEndpoint,
)


class TestSiteAndPages(unittest.TestCase):
    """Test Site and PageDetails."""

    def test_site_defaults(self):
        site = Site.from_dict({"uid": "s1", "name": "Acme"})
        self.assertFalse(site.on_demand)
        self.assertIsNone(site.devices_status)
        self.assertIsNone(site.variables)

    def test_update_request(self):
        site = Site(uid="s1", name="Acme", notes="n", splashtop_auto_install=True)
        self.assertEqual(
            site.update_request(name="Acme Ltd"),
            {
                "name": "Acme Ltd",
                "description": None,
                "notes": "n",
                "onDemand": False,
                "splashtopAutoInstall": True,
            },
        )

    def test_total_pages(self):
        self.assertEqual(PageDetails(total_count=120).total_pages(50), 3)
        self.assertEqual(PageDetails(total_count=100).total_pages(50), 2)
        self.assertEqual(PageDetails(total_count=0).total_pages(50), 1)
        self.assertEqual(PageDetails().total_pages(50), 1)


class TestDevice(unittest.TestCase):
    """Test Device parsing."""

    def test_parse(self):
        device = Device.from_dict(
            {
                "uid": "d1",
                "hostname": "SRV-01",
                "id": 7,
                "siteUid": "s1",
                "online": True,
                "deviceType": {"type": "Main System Chassis"},
                "antivirus": {"antivirusProduct": "Sophos Intercept X", "antivirusStatus": "RunningAndUpToDate"},
                "udf": {"udf1": "rack 3", "udf30": 42},
                "patchManagement": {"patchStatus": "FullyPatched", "patchesInstalled": 12},
            }
        )
        self.assertEqual(device.device_type, "Server")
        self.assertEqual(device.antivirus_product, "Sophos Intercept X")
        self.assertEqual(len(device.udf), UDF_COUNT)
        self.assertEqual(device.udf[0], "rack 3")
        self.assertEqual(device.udf[29], "42")
        self.assertIsNone(device.udf[1])
        self.assertEqual(device.patch_management.patches_installed, 12)

    def test_missing_antivirus(self):
        self.assertEqual(Device(uid="d", hostname="h").antivirus_product, "")

    def test_with_udf_returns_copy(self):
        device = Device(uid="d", hostname="h")
        changed = device.with_udf(2, "x")
        self.assertIsNone(device.udf[2])
        self.assertEqual(changed.udf[2], "x")


class TestActivityAndJobs(unittest.TestCase):
    """Test activity logs and job records."""

    def test_activity_details_json(self):
        log = ActivityLog.from_dict(
            {
                "id": 1,
                "deviceId": "10",
                "site": {"name": "Acme"},
                "user": {"userName": "admin"},
                "details": json.dumps({"job.uid": "j1", "job.status": "success", "extra": [1, 2]}),
            }
        )
        self.assertEqual(log.id, "1")
        self.assertEqual(log.device_id, 10)
        self.assertEqual(log.site_name, "Acme")
        self.assertEqual(log.job_uid, "j1")
        self.assertEqual(log.job_status, "success")
        self.assertEqual(log.extra_details(), [("extra", "[1, 2]")])

    def test_activity_plain_text_details(self):
        log = ActivityLog.from_dict({"id": "2", "details": "not json"})
        self.assertEqual(log.details, {"details": "not json"})
        self.assertIsNone(log.job_uid)

    def test_job_result(self):
        result = JobResult.from_dict(
            {
                "jobUid": "j1",
                "componentResults": [{"componentName": "Script", "hasStdOut": True, "numberOfWarnings": "2"}],
            }
        )
        self.assertEqual(result.component_results[0].number_of_warnings, 2)
        self.assertTrue(result.component_results[0].has_std_out)

    def test_component_variables(self):
        component = Component.from_dict(
            {"uid": "c", "name": "Cleanup", "variables": [{"name": "path", "defaultVal": "C:\\"}]}
        )
        self.assertEqual(component.variables[0].default_value, "C:\\")

    def test_quick_job(self):
        self.assertEqual(QuickJob.from_dict(None).name, "Unknown")
        job = QuickJob.from_dict({"job": {"id": "3", "name": "Run", "status": "active"}})
        self.assertEqual((job.id, job.status), (3, "active"))


class TestMisc(unittest.TestCase):
    """Test alerts, incidents and security records."""

    def test_alert_diagnostics_are_flattened(self):
        alert = Alert.from_dict({"alertUid": "a", "diagnostics": "line one\r\nline   two", "priority": None})
        self.assertEqual(alert.diagnostics, "line one line two")
        self.assertEqual(alert.priority, "Unknown")

    def test_incident(self):
        incident = Incident.from_dict({"id": "5", "status": "resolved", "accountId": "42", "accountName": "Acme"})
        self.assertEqual((incident.id, incident.account_id), (5, 42))

    def test_sophos_endpoint(self):
        endpoint = SophosEndpoint.from_dict(
            {"id": "e", "hostname": "h", "health": {"overall": "bad"}, "isolation": {"isIsolated": True}},
            "t1",
            "eu01",
        )
        self.assertEqual(endpoint.health, "bad")
        self.assertTrue(endpoint.isolated)
        self.assertEqual(endpoint.tenant_id, "t1")


if __name__ == "__main__":
    unittest.main()
