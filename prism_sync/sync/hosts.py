"""
Host sync

Prism hosts become hypervisor compute servers. Capacity only ever grows on
update; used memory is the sum of the VMs placed on the host.
"""

import uuid
from datetime import datetime, timezone
from typing import List

from prism_sync.api.models import PrismHost
from prism_sync.config import HOST_SERVER_TYPE_CODE
from prism_sync.models import (
    TRANSITIONAL_STATUSES,
    ComputeCapacityInfo,
    ComputeServer,
    ComputeServerAccess,
    PowerState,
    ServerStatus,
)
from prism_sync.sync.base import REF_TYPE_CLOUD, BaseSync
from prism_sync.sync.task import SyncTask, UpdateItem


def host_power_state(host: PrismHost) -> PowerState:
    """Prism only reports running hosts reliably; anything else is unknown."""
    return PowerState.ON if host.powered_on else PowerState.UNKNOWN


class HostsSync(BaseSync):
    """Reconciles Prism hosts with hypervisor compute servers"""

    def execute(self):
        self.log("Executing hosts sync")
        try:
            list_results = self.api.list_hosts()
            if not list_results.success:
                self.log(f"Error listing hosts: {list_results.msg}", "ERROR")
                return

            server_type = self.store.server_types.find(code=HOST_SERVER_TYPE_CODE)
            server_os = self.store.os_types.find(code="linux")
            existing_items = self.store.servers.list_identity_projections(
                ref_type=REF_TYPE_CLOUD,
                ref_id=self.cloud.id,
                compute_server_type__code=HOST_SERVER_TYPE_CODE,
            )

            SyncTask(existing_items, list_results.items) \
                .add_match_function(lambda existing, remote: existing.external_id == remote.uuid) \
                .with_load_object_details_from_finder(lambda items: self.store.servers.list_by_id(self.ids(items))) \
                .on_add(lambda items: self.add_servers(items, server_type, server_os)) \
                .on_update(self.update_servers) \
                .on_delete(self.delete_servers) \
                .start()
        except Exception as e:
            self.log(f"HostsSync error: {e}", "ERROR", exc_info=True)

    def build_server(self, host: PrismHost, server_type, server_os) -> ComputeServer:
        ip_address = host.hypervisor_address
        server = ComputeServer(
            account_id=self.cloud.owner_id,
            category=f"nutanix.host.{self.cloud.id}",
            name=host.name,
            external_id=host.uuid,
            cloud_id=self.cloud.id,
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            ssh_username="root",
            api_key=str(uuid.uuid4()),
            status=ServerStatus.PROVISIONED.value,
            status_date=datetime.now(timezone.utc),
            provision=False,
            managed=False,
            single_tenant=False,
            server_type="hypervisor",
            compute_server_type=server_type,
            server_os=server_os,
            os_type="linux",
            hostname=host.name,
            ssh_host=ip_address,
            external_ip=ip_address,
            internal_ip=ip_address,
            power_state=host_power_state(host),
            max_memory=host.memory_capacity_in_bytes or 0,
            max_cores=host.total_cores,
            max_storage=0,
        )
        if host.ipmi_address:
            server.accesses = [ComputeServerAccess(access_type="ipmi", host=host.ipmi_address)]
        server.capacity_info = ComputeCapacityInfo(
            max_memory=server.max_memory,
            max_cores=server.max_cores,
            max_storage=server.max_storage,
        )
        return server

    def add_servers(self, add_items: List[PrismHost], server_type, server_os):
        self.log(f"Adding {len(add_items)} host(s)", "DEBUG")
        servers = [self.build_server(host, server_type, server_os) for host in add_items]
        self.log_failures(self.store.servers.bulk_create(servers), "host create")

    def update_servers(self, update_items: List[UpdateItem]):
        self.log(f"Updating {len(update_items)} host(s)", "DEBUG")
        servers_to_update = []
        for item in update_items:
            server: ComputeServer = item.existing_item
            host: PrismHost = item.master_item
            if server.status in TRANSITIONAL_STATUSES:
                continue
            if self.refresh_host(server, host):
                servers_to_update.append(server)

        if servers_to_update:
            self.log_failures(self.store.servers.bulk_save(servers_to_update), "host save")

    def refresh_host(self, server: ComputeServer, host: PrismHost) -> bool:
        """Apply remote capacity and power to server; True if anything changed."""
        should_update = False
        capacity_info = server.capacity_info

        child_servers = self.store.servers.list(parent_server_id=server.id)
        if child_servers:
            combined_child_memory = sum(child.max_memory or 0 for child in child_servers)
            if server.used_memory != combined_child_memory:
                server.used_memory = combined_child_memory
                if capacity_info:
                    capacity_info.used_memory = combined_child_memory
                should_update = True

        max_memory = host.memory_capacity_in_bytes or 0
        if max_memory > (server.max_memory or 0):
            server.max_memory = max_memory
            if capacity_info:
                capacity_info.max_memory = max_memory
            should_update = True

        max_cores = host.total_cores
        if max_cores > (server.max_cores or 0):
            server.max_cores = max_cores
            if capacity_info:
                capacity_info.max_cores = max_cores
            should_update = True

        power_state = host_power_state(host)
        if server.power_state != power_state:
            server.power_state = power_state
            should_update = True

        return should_update

    def delete_servers(self, delete_items: list):
        self.log(f"Deleting {len(delete_items)} host(s)", "DEBUG")
        for item in delete_items:
            # detach VMs first so they survive the host record
            children = self.store.servers.list(parent_server_id=item.id)
            if children:
                for child in children:
                    child.parent_server_id = None
                self.log_failures(self.store.servers.bulk_save(children), "host child detach")

        self.log_failures(self.store.servers.bulk_remove(delete_items), "host remove")
