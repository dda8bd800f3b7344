"""Tests for the threaded task dispatcher."""

import os
import sys
import unittest
from unittest.mock import Mock, patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api import Backends, ServerError
from api.types import Device, DevicesPage, PageDetails, SophosEndpoint, SophosTenant
from dashboard.dispatcher import DEFAULT_OPERATIONS, DispatchRequest, TaskDispatcher
from dashboard.messages import EventChannel
from dashboard.slots import RequestCorrelation


def request(operation, **params):
    return DispatchRequest(
        operation=operation,
        correlation=RequestCorrelation(slot=(operation,), ordinal=1),
        params=params,
    )


class TestTaskDispatcher(unittest.TestCase):
    """Test TaskDispatcher reporting."""

    def setUp(self):
        self.channel = EventChannel()
        self.rmm = Mock()
        self.backends = Backends(rmm=self.rmm)
        self.dispatcher = TaskDispatcher(self.backends, self.channel)

    def _run(self, req):
        self.dispatcher.dispatch(req).join(timeout=5)
        message = self.channel.get(timeout=1)
        self.assertIsNotNone(message)
        self.assertIsNone(self.channel.get_nowait(), "exactly one completion per request")
        return message

    def test_success_posts_value(self):
        self.rmm.get_site_variables.return_value = ["v"]
        message = self._run(request("site-variables", site_uid="site-1"))

        self.assertTrue(message.ok)
        self.assertEqual(message.value, ["v"])
        self.assertEqual(message.correlation.slot, ("site-variables",))
        self.rmm.get_site_variables.assert_called_once_with("site-1")

    def test_api_error_posts_message(self):
        self.rmm.get_site_variables.side_effect = ServerError(500, "down")
        message = self._run(request("site-variables", site_uid="site-1"))

        self.assertFalse(message.ok)
        self.assertEqual(message.error, "API request failed with status: 500 - down")

    def test_unexpected_exception_is_reported(self):
        self.rmm.get_site_variables.side_effect = KeyError("uid")
        message = self._run(request("site-variables", site_uid="site-1"))

        self.assertTrue(message.error.startswith("Unexpected error:"))

    def test_unknown_operation(self):
        message = self._run(request("teleport"))
        self.assertIn("Unknown operation: teleport", message.error)

    def test_unconfigured_backend(self):
        message = self._run(request("incidents"))
        self.assertEqual(message.error, "RocketCyber is not configured")

    def test_custom_operations(self):
        dispatcher = TaskDispatcher(self.backends, self.channel, operations={"echo": lambda b, value: value})
        dispatcher.dispatch(request("echo", value=7)).join(timeout=5)
        self.assertEqual(self.channel.get(timeout=1).value, 7)

    def test_dispatch_all(self):
        self.rmm.get_components.return_value = []
        threads = self.dispatcher.dispatch_all([request("components"), request("components")])
        for thread in threads:
            thread.join(timeout=5)
        self.assertEqual(len(self.channel), 2)


class TestDefaultOperations(unittest.TestCase):
    """Test the operation table adapters."""

    def test_devices_unwraps_page(self):
        rmm = Mock()
        device = Device(uid="d", hostname="h")
        rmm.get_devices.return_value = DevicesPage(devices=[device], page_details=PageDetails())
        self.assertEqual(DEFAULT_OPERATIONS["devices"](Backends(rmm=rmm), site_uid="s"), [device])

    def test_av_agent_takes_first_match(self):
        datto_av = Mock()
        datto_av.get_agent_details.return_value = []
        backends = Backends(rmm=Mock(), datto_av=datto_av)
        self.assertIsNone(DEFAULT_OPERATIONS["av-agent"](backends, hostname="h"))

    def test_job_output_picks_stream(self):
        rmm = Mock()
        DEFAULT_OPERATIONS["job-output"](Backends(rmm=rmm), job_uid="j", device_uid="d", stream="stderr")
        rmm.get_job_stderr.assert_called_once_with("j", "d")
        rmm.get_job_stdout.assert_not_called()

    def test_sophos_endpoint_matches_tenant_and_hostname(self):
        sophos = Mock()
        tenant = SophosTenant(id="t1", name="Acme Corp", data_region="eu01")
        sophos.get_tenants.return_value = [SophosTenant(id="t0", name="Other", data_region="us01"), tenant]
        sophos.get_endpoints.return_value = [
            SophosEndpoint(id="e1", hostname="HOST-10"),
            SophosEndpoint(id="e2", hostname="host-1"),
        ]
        backends = Backends(rmm=Mock(), sophos=sophos)
        device = Device(uid="d", hostname="HOST-1", site_name="acme corp")

        endpoint = DEFAULT_OPERATIONS["sophos-endpoint"](backends, device=device)

        self.assertEqual(endpoint.id, "e2")
        sophos.get_endpoints.assert_called_once_with("t1", "eu01", "HOST-1")

    def test_sophos_endpoint_without_tenant(self):
        sophos = Mock()
        backends = Backends(rmm=Mock(), sophos=sophos)
        device = Device(uid="d", hostname="HOST-1", site_name="Nobody")

        self.assertIsNone(DEFAULT_OPERATIONS["sophos-endpoint"](backends, device=device, tenants=[]))
        sophos.get_tenants.assert_not_called()

    def test_open_web_remote_uses_browser(self):
        with patch("dashboard.dispatcher.webbrowser.open", return_value=True) as browser:
            opened = DEFAULT_OPERATIONS["open-web-remote"](Backends(rmm=Mock()), url="https://remote.test/d")
        self.assertTrue(opened)
        browser.assert_called_once_with("https://remote.test/d")


if __name__ == "__main__":
    unittest.main()
