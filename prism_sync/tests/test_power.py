import unittest
from unittest.mock import MagicMock

from prism_sync.api.client import ApiResult
from prism_sync.models import ComputeServer
from prism_sync.power import do_start, do_stop


class PowerTests(unittest.TestCase):
    def setUp(self):
        self.server = ComputeServer(name="app-01", external_id="vm-1")
        self.api = MagicMock()

    def loaded(self, power_state):
        self.api.load_virtual_machine.return_value = ApiResult(
            success=True, data={"power_state": power_state, "vm_logical_timestamp": 3},
        )

    def test_start_running_vm_is_a_no_op(self):
        self.loaded("on")

        result = do_start(self.api, self.server)

        self.assertTrue(result.success)
        self.api.start_vm.assert_not_called()

    def test_stop_passes_logical_timestamp(self):
        self.loaded("on")
        self.api.stop_vm.return_value = {"success": True, "task_uuid": "t-1"}

        result = do_stop(self.api, self.server)

        self.assertTrue(result.success)
        self.api.stop_vm.assert_called_once_with("vm-1", 3)

    def test_failed_start_is_reported(self):
        self.loaded("off")
        self.api.start_vm.return_value = {"success": False, "msg": "power on failed"}

        result = do_start(self.api, self.server)

        self.assertFalse(result.success)
        self.assertEqual(result.msg, "power on failed")

    def test_api_error_becomes_failed_response(self):
        self.api.load_virtual_machine.side_effect = RuntimeError("connection reset")

        with self.assertLogs("prism_sync.power", level="ERROR"):
            result = do_stop(self.api, self.server)

        self.assertFalse(result.success)
        self.assertIn("connection reset", result.msg)


if __name__ == "__main__":
    unittest.main()
