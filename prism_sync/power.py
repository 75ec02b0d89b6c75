"""Power operations on discovered VMs"""

import logging

from prism_sync.api.service import PrismApiService
from prism_sync.models import ComputeServer, ServiceResponse

logger = logging.getLogger(__name__)


def _set_power(api: PrismApiService, server: ComputeServer, target: str, label: str) -> ServiceResponse:
    try:
        vm_results = api.load_virtual_machine(server.external_id)
        vm = vm_results.data if vm_results.success and isinstance(vm_results.data, dict) else {}
        if (vm.get("power_state") or "").lower() == target:
            logger.debug(f"{label} >> vm {server.external_id} already {target}")
            return ServiceResponse(success=True)

        timestamp = vm.get("vm_logical_timestamp")
        if target == "on":
            results = api.start_vm(server.external_id, timestamp)
        else:
            results = api.stop_vm(server.external_id, timestamp)
        logger.debug(f"{label} >> success: {results.get('success')} msg: {results.get('msg')}")
        return ServiceResponse(success=bool(results.get("success")), msg=results.get("msg"))
    except Exception as e:
        logger.error(f"{label} error: {e}", exc_info=True)
        return ServiceResponse.error(str(e))


def do_start(api: PrismApiService, server: ComputeServer, label: str = "startServer") -> ServiceResponse:
    """Power on a VM; succeeds without a call when it is already on."""
    return _set_power(api, server, "on", label)


def do_stop(api: PrismApiService, server: ComputeServer, label: str = "stopServer") -> ServiceResponse:
    """Power off a VM; succeeds without a call when it is already off."""
    return _set_power(api, server, "off", label)
