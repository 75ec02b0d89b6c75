import base64
import unittest
from unittest.mock import MagicMock, patch

import requests

from prism_sync.api.client import ApiResult, PrismApiClient, build_headers, get_prism_api_url, get_prism_credentials
from prism_sync.api.service import PrismApiService, check_ipv4_ip
from prism_sync.api.shapes import V1Shape, V2Shape, select_api_shape
from prism_sync.errors import PrismApiError, PrismConfigError, TaskTimeoutError, map_prism_error
from prism_sync.tests.fixtures import LEGACY_VM_ENTITY, VM_ENTITY, make_cloud


def response(status_code, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    return resp


class ScriptedClient:
    """Returns queued ApiResults per path and records every call."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def call_json_api(self, base_url, path, username=None, password=None, options=None, http_method="GET"):
        self.calls.append((http_method, path, options))
        queued = self.routes.get(path)
        if isinstance(queued, list):
            return queued.pop(0) if len(queued) > 1 else queued[0]
        return queued or ApiResult(success=False, error=True, status_code=404)


def task(status, **extra):
    return ApiResult(success=True, status_code=200, data={"uuid": "t-1", "progress_status": status, **extra})


class ClientHelperTests(unittest.TestCase):
    def test_basic_auth_header(self):
        headers = build_headers("admin", "secret", {"X-Trace": "1"})
        self.assertEqual(headers["X-Trace"], "1")
        self.assertEqual(headers["Content-Type"], "application/json")
        expected = base64.b64encode(b"admin:secret").decode("ascii")
        self.assertEqual(headers["Authorization"], f"Basic {expected}")

    def test_missing_credentials_skip_authorization(self):
        self.assertNotIn("Authorization", build_headers(None, "secret"))

    def test_api_url_normalization(self):
        self.assertEqual(get_prism_api_url(make_cloud(api_url="https://prism.lab:9440/console/")),
                         "https://prism.lab:9440")
        self.assertEqual(get_prism_api_url(make_cloud(api_url="prism.lab")), "https://prism.lab:9440")
        self.assertEqual(get_prism_api_url(make_cloud(api_url=None, config={"apiUrl": "10.0.0.9"})),
                         "https://10.0.0.9:9440")

    def test_missing_url_or_password_raises(self):
        with self.assertRaises(PrismConfigError):
            get_prism_api_url(make_cloud(api_url=None, config={}))
        with self.assertRaises(PrismConfigError):
            get_prism_credentials(make_cloud(password=None, config={}))

    def test_api_version_selects_shape(self):
        self.assertIsInstance(select_api_shape(make_cloud(config={"apiVersion": "v1"})), V1Shape)
        self.assertIsInstance(select_api_shape(make_cloud()), V2Shape)


class CallJsonApiTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = PrismApiClient(session=self.session, verify_ssl=True, timeout=(1, 2))

    def test_success_decodes_body(self):
        self.session.request.return_value = response(200, {"entities": []})

        result = self.client.call_json_api("https://prism.lab:9440/", "/api/nutanix/v2.0/cluster", "a", "b")

        self.assertTrue(result.success)
        self.assertEqual(result.data, {"entities": []})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://prism.lab:9440/api/nutanix/v2.0/cluster"))
        self.assertEqual(kwargs["timeout"], (1, 2))

    def test_unauthorized_maps_to_auth(self):
        self.session.request.return_value = response(401, {"message": "Authentication required"})

        result = self.client.call_json_api("https://prism.lab:9440", "/x")

        self.assertFalse(result.success)
        self.assertEqual(result.status_code, 401)
        self.assertEqual(result.error_code, "AUTH")

    def test_timeout_is_returned_not_raised(self):
        self.session.request.side_effect = requests.exceptions.ConnectTimeout("slow")

        result = self.client.call_json_api("https://prism.lab:9440", "/x")

        self.assertTrue(result.error)
        self.assertEqual(result.error_code, "TIMEOUT")

    def test_connection_error_is_returned_not_raised(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")

        result = self.client.call_json_api("https://prism.lab:9440", "/x")

        self.assertEqual(result.error_code, "CONNECTION")


class ErrorMappingTests(unittest.TestCase):
    def test_status_codes(self):
        self.assertEqual(map_prism_error(403)["code"], "FORBIDDEN")
        self.assertEqual(map_prism_error(404)["code"], "NOT_FOUND")
        self.assertTrue(map_prism_error(503)["retry"])

    def test_message_patterns(self):
        self.assertEqual(map_prism_error(400, {"message": "kInvalidState: vm is off"})["code"], "INVALID_STATE")
        self.assertEqual(map_prism_error(400, "request timed out")["code"], "TIMEOUT")
        self.assertEqual(map_prism_error(400, {"message": "bad input"})["code"], "UNKNOWN")


class PrismApiServiceTests(unittest.TestCase):
    def service(self, routes):
        self.client = ScriptedClient(routes)
        self.sleeps = []
        return PrismApiService(self.client, make_cloud(), sleep=self.sleeps.append)

    def test_connection_flags_invalid_login(self):
        api = self.service({"/api/nutanix/v2.0/cluster": ApiResult(success=False, error=True, status_code=401)})
        self.assertEqual(api.test_connection(), {"success": False, "invalid_login": True, "status_code": 401})

    def test_vm_list_joins_legacy_record(self):
        other = dict(VM_ENTITY, uuid="other-vm")
        api = self.service({
            "/PrismGateway/services/rest/v1/vms": ApiResult(success=True, data={"entities": [LEGACY_VM_ENTITY]}),
            "/api/nutanix/v2.0/vms": ApiResult(success=True, data={"entities": [VM_ENTITY, other]}),
        })

        result = api.list_virtual_machines()

        self.assertTrue(result.success)
        by_uuid = {vm.uuid: vm for vm in result.items}
        self.assertEqual(by_uuid[VM_ENTITY["uuid"]].legacy_vm.host_name, "app-01.lab.local")
        self.assertIsNone(by_uuid["other-vm"].legacy_vm)
        _, _, options = self.client.calls[-1]
        self.assertEqual(options.query_params["include_vm_disk_config"], "true")

    def test_failed_list_reports_failure(self):
        api = self.service({})
        result = api.list_networks()
        self.assertFalse(result.success)
        self.assertEqual(result.items, [])

    def test_task_success_and_failure(self):
        api = self.service({"/api/nutanix/v2.0/tasks/t-1": [task("Running"), task("Succeeded")]})
        result = api.check_task_ready("t-1")
        self.assertTrue(result.success)
        self.assertFalse(result.error)
        self.assertEqual(len(self.sleeps), 2)

        api = self.service({"/api/nutanix/v2.0/tasks/t-1": task("Failed")})
        result = api.check_task_ready("t-1")
        self.assertTrue(result.success)
        self.assertTrue(result.error)

    def test_task_endpoint_500_stops_polling(self):
        api = self.service({"/api/nutanix/v2.0/tasks/t-1": ApiResult(success=False, error=True, status_code=500)})
        result = api.check_task_ready("t-1")
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, 500)
        self.assertEqual(len(self.sleeps), 1)

    @patch("prism_sync.api.service.TASK_POLL_ATTEMPTS", 3)
    def test_pending_task_exhausts_attempts(self):
        api = self.service({"/api/nutanix/v2.0/tasks/t-1": task("Running")})
        result = api.check_task_ready("t-1")
        self.assertFalse(result.success)
        self.assertEqual(len(self.sleeps), 3)

        with self.assertRaises(TaskTimeoutError) as raised:
            api.wait_for_task("t-1")
        self.assertEqual(raised.exception.task_id, "t-1")

    def test_wait_for_failed_task_raises(self):
        api = self.service({"/api/nutanix/v2.0/tasks/t-1": task("Failed")})
        with self.assertRaises(PrismApiError) as raised:
            api.wait_for_task("t-1")
        self.assertEqual(raised.exception.error_code, "TASK_FAILED")

    def test_stop_vm_already_off_makes_no_power_call(self):
        api = self.service({"/api/nutanix/v2.0/vms/vm-1": ApiResult(success=True, data={"power_state": "off"})})

        self.assertEqual(api.stop_vm("vm-1"), {"success": True})
        self.assertEqual([method for method, _, _ in self.client.calls], ["GET"])

    def test_start_vm_tolerates_invalid_state(self):
        api = self.service({
            "/api/nutanix/v2.0/vms/vm-1/set_power_state": ApiResult(success=True, data={"task_uuid": "t-1"}),
            "/api/nutanix/v2.0/tasks/t-1": task("Failed", meta_response={"error": "kInvalidState"}),
        })

        result = api.start_vm("vm-1", timestamp=7)

        self.assertTrue(result["success"])
        method, _, options = self.client.calls[0]
        self.assertEqual(method, "POST")
        self.assertEqual(options.body, {"transition": "ON", "vm_logical_timestamp": 7})

    def test_server_ready_once_vm_reports_ipv4(self):
        booting = {"power_state": "on", "vm_nics": [{"ip_addresses": ["169.254.3.3"]}]}
        ready = {"power_state": "on", "vm_nics": [{"ip_addresses": ["fe80::1", "10.0.0.5"]}]}
        api = self.service({"/api/nutanix/v2.0/vms/vm-1": [
            ApiResult(success=True, data=booting),
            ApiResult(success=True, data=ready),
        ]})

        result = api.check_server_ready("vm-1")

        self.assertTrue(result["success"])
        self.assertEqual(result["ip_addresses"], ["10.0.0.5"])
        self.assertEqual(result["results"], ready)
        self.assertEqual(len(self.sleeps), 2)

    @patch("prism_sync.api.service.SERVER_READY_POLL_ATTEMPTS", 3)
    def test_server_never_ready_exhausts_attempts(self):
        api = self.service({"/api/nutanix/v2.0/vms/vm-1": ApiResult(
            success=True, data={"power_state": "off", "vm_nics": [{"ip_addresses": ["10.0.0.5"]}]},
        )})

        result = api.check_server_ready("vm-1")

        self.assertFalse(result["success"])
        self.assertIn("vm-1", result["msg"])
        self.assertEqual(len(self.sleeps), 3)

    def test_ipv4_check(self):
        self.assertTrue(check_ipv4_ip("10.0.0.5"))
        self.assertFalse(check_ipv4_ip("169.254.1.1"))
        self.assertFalse(check_ipv4_ip("fe80::1"))
        self.assertFalse(check_ipv4_ip(None))


if __name__ == "__main__":
    unittest.main()
