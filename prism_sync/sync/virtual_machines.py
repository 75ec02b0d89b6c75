"""
Virtual machine sync

Prism VMs become unmanaged compute servers. After the server record is
written its disks, utilization stats and NICs are reconciled in that order;
servers in a provisioning or resizing state are left to the operation that
owns them.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from prism_sync.api.models import PrismLegacyVm, PrismVm
from prism_sync.config import HOST_SERVER_TYPE_CODE, ONE_MEGABYTE, UNMANAGED_SERVER_TYPE_CODE
from prism_sync.models import (
    ComputeCapacityInfo,
    ComputeServer,
    ComputeServerType,
    Network,
    OsType,
    PowerState,
    ServerStatus,
)
from prism_sync.sync.base import REF_TYPE_CLOUD, BaseSync
from prism_sync.sync.changes import apply_changes
from prism_sync.sync.interfaces import InterfacesSync
from prism_sync.sync.plans import PlanCatalog
from prism_sync.sync.task import SyncTask, UpdateItem
from prism_sync.sync.volumes import VolumesSync
from prism_sync.sync.workloads import WorkloadResizeSync
from prism_sync.utils import parse_bool_flag

SIZING_FIELDS = ("max_cores", "max_memory", "cores_per_socket")


def vm_power_state(vm: PrismVm) -> PowerState:
    return PowerState.ON if vm.powered_on else PowerState.OFF


def vm_sizing(vm: PrismVm) -> Dict[str, int]:
    return {
        "max_cores": (vm.num_vcpus or 0) * (vm.num_cores_per_vcpu or 0),
        "cores_per_socket": vm.num_cores_per_vcpu or 1,
        "max_memory": (vm.memory_mb or 0) * ONE_MEGABYTE,
    }


def desired_server_state(server: ComputeServer, vm: PrismVm, parent_server_id: Optional[int]) -> Dict[str, Any]:
    """
    Field values the server should have after this pass.

    IP fields are only refreshed while the VM is on. ssh_host follows an IP
    field only when it mirrored that field, so a hand-set ssh host survives.
    """
    desired: Dict[str, Any] = {
        "power_state": vm_power_state(vm),
        "name": vm.name,
        "parent_server_id": parent_server_id,
    }
    desired.update(vm_sizing(vm))

    ip_address = vm.first_ip_address
    if desired["power_state"] == PowerState.ON and ip_address:
        ssh_host = server.ssh_host
        if ip_address != server.external_ip:
            if server.external_ip == server.ssh_host:
                ssh_host = ip_address
            desired["external_ip"] = ip_address
        if ip_address != server.internal_ip:
            if server.internal_ip == server.ssh_host:
                ssh_host = ip_address
            desired["internal_ip"] = ip_address
        desired["ssh_host"] = ssh_host
    return desired


def refresh_vm_stats(server: ComputeServer, legacy_vm: PrismLegacyVm) -> bool:
    """
    Copy utilization from the v1 record onto the server.

    Returns:
        True if any utilization value changed
    """
    updates = False
    capacity_info = server.capacity_info or ComputeCapacityInfo(max_storage=server.max_storage)

    max_memory = legacy_vm.memory_capacity_in_bytes or 0
    used_memory = legacy_vm.stat("guest.memory_usage_bytes")
    if max_memory != capacity_info.max_memory or used_memory != capacity_info.used_memory:
        capacity_info.max_memory = max_memory
        capacity_info.used_memory = used_memory
        server.used_memory = used_memory
        updates = True

    # with an agent installed the guest reports its own disk usage
    if server.agent_installed:
        used_storage = server.used_storage or 0
    else:
        used_storage = legacy_vm.stat("controller_user_bytes")
    if used_storage != capacity_info.used_storage:
        capacity_info.used_storage = used_storage
        server.used_storage = used_storage
        updates = True

    used_cpu = min(100.0, legacy_vm.stat("hypervisor_cpu_usage_ppm") / 10000)
    if used_cpu != server.used_cpu:
        capacity_info.max_cpu = used_cpu
        server.used_cpu = used_cpu
        updates = True

    if updates:
        server.capacity_info = capacity_info
    return updates


class VirtualMachinesSync(BaseSync):
    """Reconciles Prism VMs with unmanaged compute servers"""

    def execute(self):
        self.log("Executing virtual machine sync")
        try:
            list_results = self.api.list_virtual_machines()
            if not list_results.success:
                self.log(f"Error listing virtual machines: {list_results.msg}", "ERROR")
                return

            self.server_type = self.store.server_types.find(code=UNMANAGED_SERVER_TYPE_CODE)
            self.os_type = self.store.os_types.find(code="unknown")
            self.plan_catalog = PlanCatalog.load(self.store)
            self.net_types = self.store.interface_types.list()
            self.host_ids = {
                host.external_id: host.id
                for host in self.store.servers.list(cloud_id=self.cloud.id, compute_server_type__code=HOST_SERVER_TYPE_CODE)
            }
            existing_items = self.store.servers.list_identity_projections(
                cloud_id=self.cloud.id,
                compute_server_type__code__ne=HOST_SERVER_TYPE_CODE,
            )

            SyncTask(existing_items, list_results.items) \
                .add_match_function(lambda existing, remote: existing.external_id == remote.external_id) \
                .with_load_object_details_from_finder(lambda items: self.store.servers.list_by_id(self.ids(items))) \
                .on_add(self.on_add) \
                .on_update(self.update_matched_virtual_machines) \
                .on_delete(self.remove_missing_virtual_machines) \
                .start()
        except Exception as e:
            self.log(f"VirtualMachinesSync error: {e}", "ERROR", exc_info=True)

    def should_import_existing(self) -> bool:
        return parse_bool_flag(self.cloud.get_config_property("importExisting"))

    def on_add(self, add_items: List[PrismVm]):
        if not self.should_import_existing():
            self.log(f"import of existing VMs disabled; skipping {len(add_items)} VM(s)", "DEBUG")
            return
        self.add_missing_virtual_machines(add_items)

    def build_vm(self, vm: PrismVm, os_type: Optional[OsType], server_type: Optional[ComputeServerType]) -> ComputeServer:
        ip_address = vm.first_ip_address
        server = ComputeServer(
            account_id=self.cloud.account_id,
            cloud_id=self.cloud.id,
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            external_id=vm.external_id,
            name=vm.name,
            ssh_username="root",
            os_type="unknown",
            server_os=os_type,
            external_ip=ip_address,
            internal_ip=ip_address,
            ssh_host=ip_address,
            power_state=vm_power_state(vm),
            api_key=str(uuid.uuid4()),
            compute_server_type=server_type,
            provision=False,
            single_tenant=True,
            lvm_enabled=False,
            managed=False,
            discovered=True,
            server_type="unmanaged",
            hostname=vm.legacy_vm.host_name if vm.legacy_vm else None,
            status=ServerStatus.PROVISIONED.value,
            status_date=datetime.now(timezone.utc),
            parent_server_id=self.host_ids.get(vm.host_uuid) if vm.host_uuid else None,
            **vm_sizing(vm),
        )
        server.plan = self.plan_catalog.find_plan(server.max_memory, server.max_cores, None, self.cloud.account_id)
        return server

    def add_missing_virtual_machines(self, add_items: List[PrismVm]):
        self.log(f"Adding {len(add_items)} virtual machine(s)", "DEBUG")
        networks = self.store.networks.list(ref_type=REF_TYPE_CLOUD, ref_id=self.cloud.id)
        for vm in add_items:
            saved = self.store.servers.create(self.build_vm(vm, self.os_type, self.server_type))
            if saved:
                self.perform_post_save_sync(saved, vm, networks)
            else:
                self.log(f"failed to create server for vm {vm.uuid}", "ERROR")

    def referenced_networks(self, update_items: List[UpdateItem]) -> List[Network]:
        network_ids = sorted({
            nic.network_uuid
            for item in update_items
            for nic in item.master_item.vm_nics
            if nic.network_uuid
        })
        if not network_ids:
            return []
        return self.store.networks.list(ref_type=REF_TYPE_CLOUD, ref_id=self.cloud.id, external_id__in=network_ids)

    def update_matched_virtual_machines(self, update_items: List[UpdateItem]):
        self.log(f"Updating {len(update_items)} virtual machine(s)", "DEBUG")
        networks = self.referenced_networks(update_items)

        for item in update_items:
            server: ComputeServer = item.existing_item
            vm: PrismVm = item.master_item
            if server is None or server.status == ServerStatus.PROVISIONING.value:
                continue

            try:
                parent_server_id = self.host_ids.get(vm.host_uuid) if vm.host_uuid else None
                changes = apply_changes(server, desired_server_state(server, vm, parent_server_id))

                plan = self.plan_catalog.find_plan(server.max_memory, server.max_cores, server.plan, server.account_id)
                current_plan_id = server.plan.id if server.plan else None
                plan_changed = current_plan_id != (plan.id if plan else None)
                if plan_changed:
                    server.plan = plan

                sizing_changed = any(name in changes for name in SIZING_FIELDS)
                if server.compute_server_type and server.compute_server_type.guest_vm and (sizing_changed or plan_changed):
                    WorkloadResizeSync(self.cloud, self.store).execute(server, plan)

                if changes or plan_changed:
                    self.log(f"server {server.name} changed: {sorted(changes)}", "DEBUG")
                    server = self.save_and_get(server)

                self.perform_post_save_sync(server, vm, networks)
            except Exception as e:
                self.log(f"error updating vm {vm.uuid}: {e}", "ERROR", exc_info=True)

    def remove_missing_virtual_machines(self, remove_items: list):
        self.log(f"Removing {len(remove_items)} virtual machine(s)", "DEBUG")
        self.log_failures(self.store.servers.bulk_remove(remove_items), "virtual machine remove")

    def save_and_get(self, server: ComputeServer) -> ComputeServer:
        result = self.store.servers.bulk_save([server])
        if not result.success:
            self.log(f"Error saving server: {server.id}", "WARN")
        return self.store.servers.get(server.id) or server

    def perform_post_save_sync(self, server: ComputeServer, vm: PrismVm, networks: List[Network]):
        """
        Reconcile the server's disks, stats and NICs.

        Disks and NICs are skipped while resizing; stats are skipped while
        provisioning.
        """
        if server.status != ServerStatus.RESIZING.value:
            volume_results = VolumesSync(self.cloud, self.store).execute(server, vm.vm_disk_info)
            if volume_results.save_required:
                # pick up the volume writes
                server = self.store.servers.get(server.id) or server
            if self.refresh_capacity(server, volume_results.max_storage):
                server = self.save_and_get(server)

        if server.status != ServerStatus.PROVISIONING.value and vm.legacy_vm:
            if refresh_vm_stats(server, vm.legacy_vm):
                server = self.save_and_get(server)

        if server.status != ServerStatus.RESIZING.value:
            InterfacesSync(self.cloud, self.store).execute(server, vm.vm_nics, networks, self.net_types)

    @staticmethod
    def refresh_capacity(server: ComputeServer, max_storage: int) -> bool:
        """Record total disk size; True when a capacity record was created or its storage changed."""
        if server.capacity_info is None:
            server.max_storage = max_storage
            server.capacity_info = ComputeCapacityInfo(
                max_cores=server.max_cores,
                max_memory=server.max_memory,
                max_storage=max_storage,
            )
            return True
        if max_storage != server.max_storage:
            server.max_storage = max_storage
            server.capacity_info.max_cores = server.max_cores
            server.capacity_info.max_memory = server.max_memory
            server.capacity_info.max_storage = max_storage
            return True
        return False
