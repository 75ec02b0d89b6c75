"""
Prism Element API service

Per-cluster calls used by the reconcilers and power operations. List calls
return a ListResult with typed records; long running operations are polled
with fixed sleeps and a bounded attempt count. check_task_ready reports
exhaustion as a failed result; wait_for_task raises instead.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from prism_sync.api.client import (
    ApiResult,
    PrismApiClient,
    RequestOptions,
    get_prism_api_url,
    get_prism_credentials,
)
from prism_sync.api.models import (
    PrismLegacyVm,
    PrismNetwork,
    PrismSnapshot,
    PrismTask,
    PrismVm,
)
from prism_sync.api.shapes import select_api_shape
from prism_sync.config import (
    SERVER_READY_POLL_ATTEMPTS,
    SERVER_READY_POLL_INTERVAL,
    STANDARD_API,
    TASK_POLL_ATTEMPTS,
    TASK_POLL_INTERVAL,
    V2_API,
)
from prism_sync.errors import PrismApiError, TaskTimeoutError
from prism_sync.models import Cloud

logger = logging.getLogger(__name__)

VM_DETAIL_QUERY = {"include_vm_disk_config": "true", "include_vm_nic_config": "true"}


class ListResult(BaseModel):
    success: bool = False
    items: List[Any] = []
    msg: Optional[str] = None
    status_code: Optional[int] = None


class TaskResult(BaseModel):
    success: bool = False
    error: bool = False
    results: Optional[PrismTask] = None
    error_code: Optional[Any] = None
    msg: Optional[str] = None


def check_ipv4_ip(ip_address: Optional[str]) -> bool:
    """Routable looking IPv4: dotted and not link-local."""
    return bool(ip_address) and ip_address.find(".") > 0 and not ip_address.startswith("169")


def has_ip_address(vm: Dict[str, Any]) -> bool:
    return any(check_ipv4_ip(ip) for nic in vm.get("vm_nics") or [] for ip in nic.get("ip_addresses") or [])


class PrismApiService:
    """
    Calls against one Prism Element cluster.

    The URL, credentials and API shape are resolved once from the cloud.
    """

    def __init__(self, client: PrismApiClient, cloud: Cloud, shape=None, sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            client: Shared HTTP client
            cloud: Cloud whose cluster is addressed
            shape: API version strategy (selected from cloud config if omitted)
            sleep: Sleep function used by pollers

        Raises:
            PrismConfigError: If the cloud lacks URL or credentials
        """
        self.client = client
        self.cloud = cloud
        self.api_url = get_prism_api_url(cloud)
        self.username, self.password = get_prism_credentials(cloud)
        self.shape = shape or select_api_shape(cloud)
        self.sleep = sleep

    def _call(self, path: str, method: str = "GET", query: Optional[Dict[str, Any]] = None, body: Any = None) -> ApiResult:
        options = RequestOptions(query_params=query or {}, body=body)
        return self.client.call_json_api(self.api_url, path, self.username, self.password, options, method)

    def _list(self, path: str, build: Callable[[Dict[str, Any]], Any], query: Optional[Dict[str, Any]] = None) -> ListResult:
        results = self._call(path, query=query)
        if not results.success or results.error:
            logger.warning(f"GET {path} failed for {self.cloud.name}: {results.status_code} {results.msg}")
            return ListResult(success=False, msg=results.msg, status_code=results.status_code)

        data = results.data if isinstance(results.data, dict) else {}
        entities = data.get("entities") or []
        items = []
        for entity in entities:
            try:
                items.append(build(entity))
            except ValidationError as e:
                logger.error(f"Skipping malformed record from {path}: {e}")
        logger.debug(f"GET {path}: {len(items)} record(s)")
        return ListResult(success=True, items=items, status_code=results.status_code)

    def test_connection(self) -> Dict[str, Any]:
        """
        Verify credentials against the cluster endpoint.

        Returns:
            dict with success and invalid_login flags
        """
        results = self._call(V2_API + "cluster")
        success = results.success and not results.error
        return {
            "success": success,
            "invalid_login": (not success) and results.status_code == 401,
            "status_code": results.status_code,
        }

    def list_networks(self) -> ListResult:
        return self._list(V2_API + "networks/", PrismNetwork.model_validate)

    def list_containers(self) -> ListResult:
        return self._list(self.shape.containers_path, self.shape.normalize_container)

    def list_hosts(self) -> ListResult:
        return self._list(self.shape.hosts_path, self.shape.normalize_host)

    def list_images(self) -> ListResult:
        return self._list(self.shape.images_path, self.shape.normalize_image)

    def list_snapshots(self) -> ListResult:
        return self._list(V2_API + "snapshots", PrismSnapshot.model_validate)

    def list_virtual_machines_v1(self) -> ListResult:
        return self._list(STANDARD_API + "vms", PrismLegacyVm.model_validate)

    def list_virtual_machines(self) -> ListResult:
        """
        v2 VM list with disk and NIC config, each VM joined to its v1 record.

        The v1 record carries the guest hostname and utilization stats the v2
        payload lacks. A failed v1 call leaves legacy_vm unset.
        """
        legacy = self.list_virtual_machines_v1()
        legacy_by_uuid = {vm.uuid: vm for vm in legacy.items if vm.uuid}

        def build(entity: Dict[str, Any]) -> PrismVm:
            vm = PrismVm.model_validate(entity)
            vm.legacy_vm = legacy_by_uuid.get(vm.uuid)
            return vm

        return self._list(V2_API + "vms", build, query=VM_DETAIL_QUERY)

    def load_virtual_machine(self, vm_id: str) -> ApiResult:
        results = self._call(V2_API + f"vms/{vm_id}", query=VM_DETAIL_QUERY)
        results.success = results.success and not results.error
        return results

    def get_task(self, task_id: str) -> ApiResult:
        results = self._call(V2_API + f"tasks/{task_id}")
        results.success = results.success and not results.error
        return results

    def check_task_ready(self, task_id: Optional[str]) -> TaskResult:
        """
        Poll a task until it succeeds or fails.

        Returns:
            TaskResult. success with error=True means the task ran and failed;
            success=False means polling stopped without a verdict.
        """
        rtn = TaskResult()
        if task_id is None:
            return rtn

        for attempt in range(TASK_POLL_ATTEMPTS):
            self.sleep(TASK_POLL_INTERVAL)
            detail = self.get_task(task_id)
            task = PrismTask.model_validate(detail.data) if detail.success and isinstance(detail.data, dict) else None
            logger.debug(f"task {task_id} attempt {attempt + 1}: {task.progress_status if task else detail.status_code}")
            if task and task.progress_status:
                if task.progress_status == "Succeeded":
                    return TaskResult(success=True, results=task)
                if task.progress_status in ("Failure", "Failed"):
                    return TaskResult(success=True, error=True, results=task)
            elif detail.status_code == 500:
                logger.warning(f"task {task_id}: task endpoint returned 500, giving up")
                return TaskResult(success=False, error_code=500, msg="task api returned 500")

        rtn.msg = f"task {task_id} still pending after {TASK_POLL_ATTEMPTS} attempts"
        logger.warning(rtn.msg)
        return rtn

    def wait_for_task(self, task_id: str) -> PrismTask:
        """
        Raising variant of check_task_ready.

        Raises:
            TaskTimeoutError: If the task is still pending after every attempt
            PrismApiError: If the task failed or could not be polled
        """
        task_results = self.check_task_ready(task_id)
        if task_results.success and not task_results.error:
            return task_results.results
        if task_results.success:
            raise PrismApiError(f"task {task_id} failed", error_code="TASK_FAILED")
        if task_results.error_code is not None:
            raise PrismApiError(task_results.msg, error_code="SERVER_ERROR", status_code=task_results.error_code)
        raise TaskTimeoutError(task_id, TASK_POLL_ATTEMPTS)

    def check_server_ready(self, vm_id: str) -> Dict[str, Any]:
        """Poll until the VM is on and reports an IPv4 address."""
        for _ in range(SERVER_READY_POLL_ATTEMPTS):
            self.sleep(SERVER_READY_POLL_INTERVAL)
            detail = self.load_virtual_machine(vm_id)
            vm = detail.data if isinstance(detail.data, dict) else {}
            if detail.success and vm.get("power_state") == "on" and has_ip_address(vm):
                ip_addresses = [
                    ip for nic in vm.get("vm_nics") or [] for ip in nic.get("ip_addresses") or [] if check_ipv4_ip(ip)
                ]
                return {"success": True, "results": vm, "ip_addresses": ip_addresses}
        return {"success": False, "msg": f"vm {vm_id} not ready after {SERVER_READY_POLL_ATTEMPTS} attempts"}

    def _set_power_state(self, vm_id: str, transition: str, timestamp: Optional[int]) -> Dict[str, Any]:
        body = {"transition": transition, "vm_logical_timestamp": timestamp or 1}
        results = self._call(V2_API + f"vms/{vm_id}/set_power_state", method="POST", body=body)
        if not (results.success and results.data):
            return {"success": False, "msg": results.msg or f"power {transition.lower()} failed"}

        task_id = results.data.get("task_uuid")
        task_results = self.check_task_ready(task_id)
        # Prism fails the task with kInvalidState when the VM is already there
        meta_error = (task_results.results.meta_response or {}).get("error") if task_results.results else None
        if task_results.success and (not task_results.error or meta_error == "kInvalidState"):
            return {"success": True, "task_uuid": task_id}
        return {"success": False, "msg": f"power {transition.lower()} failed"}

    def start_vm(self, vm_id: str, timestamp: Optional[int] = None) -> Dict[str, Any]:
        return self._set_power_state(vm_id, "ON", timestamp)

    def stop_vm(self, vm_id: str, timestamp: Optional[int] = None) -> Dict[str, Any]:
        """Power off; a VM that is already off is reported as success without a call."""
        vm_result = self.load_virtual_machine(vm_id)
        if not vm_result.success:
            return {"success": False, "msg": f"VM not found: {vm_id}"}
        power_state = (vm_result.data or {}).get("power_state")
        if not power_state or power_state.lower() == "off":
            return {"success": True}
        return self._set_power_state(vm_id, "OFF", timestamp)
