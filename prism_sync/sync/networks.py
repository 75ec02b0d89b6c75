"""
Network sync

Mirrors Prism networks as orchestrator networks. Networks that carry an
IPAM address space are typed as managed VLANs and get a network pool with
one range per Prism DHCP pool.
"""

from typing import Dict, List, Optional

from prism_sync.api.models import PrismIpConfig, PrismNetwork
from prism_sync.config import NETWORK_TYPE_MANAGED_VLAN, NETWORK_TYPE_VLAN, POOL_TYPE_CODE
from prism_sync.models import Network, NetworkPool, NetworkPoolRange, NetworkPoolServer, NetworkType
from prism_sync.sync.base import REF_TYPE_CLOUD, BaseSync
from prism_sync.sync.changes import apply_changes
from prism_sync.sync.task import SyncTask, UpdateItem
from prism_sync.utils import tokenize

POOL_PARENT_TYPE = "NetworkPoolServer"


def network_category(cloud_id: int) -> str:
    return f"nutanix.acropolis.network.{cloud_id}"


def build_pool_ranges(ip_config: Optional[PrismIpConfig]) -> List[NetworkPoolRange]:
    """
    One range per Prism pool entry.

    Prism reports each pool as "start end"; entries with fewer than two
    tokens are skipped.
    """
    ranges = []
    for pool_range in (ip_config.pool if ip_config else []):
        addresses = tokenize(pool_range.range)
        if len(addresses) > 1:
            ranges.append(NetworkPoolRange(
                start_address=addresses[0],
                end_address=addresses[1],
                external_id=pool_range.range,
            ))
    return ranges


class NetworkSync(BaseSync):
    """Reconciles Prism networks and their IP pools"""

    def execute(self):
        self.log("Executing network sync")
        try:
            list_results = self.api.list_networks()
            if not list_results.success:
                self.log(f"Error getting networks from listNetworks: {list_results.msg}", "ERROR")
                return

            network_types = {network_type.code: network_type for network_type in self.store.network_types.list()}
            pool_server = self.store.network_pool_servers.find(ref_type=REF_TYPE_CLOUD, ref_id=self.cloud.id)
            existing_items = self.store.networks.list_identity_projections(
                ref_type=REF_TYPE_CLOUD,
                ref_id=self.cloud.id,
            )

            SyncTask(existing_items, list_results.items) \
                .add_match_function(lambda existing, remote: existing.external_id == remote.uuid) \
                .with_load_object_details_from_finder(lambda items: self.store.networks.list_by_id(self.ids(items))) \
                .on_add(lambda items: self.add_missing_networks(items, network_types, pool_server)) \
                .on_update(lambda items: self.update_matched_networks(items, network_types, pool_server)) \
                .on_delete(self.remove_missing_networks) \
                .start()
        except Exception as e:
            self.log(f"NetworkSync error: {e}", "ERROR", exc_info=True)

    def _network_type(self, remote: PrismNetwork, network_types: Dict[str, NetworkType]) -> Optional[NetworkType]:
        return network_types.get(NETWORK_TYPE_MANAGED_VLAN if remote.managed else NETWORK_TYPE_VLAN)

    def build_network(self, remote: PrismNetwork, network_types: Dict[str, NetworkType]) -> Network:
        network = Network(
            owner_id=self.cloud.owner_id,
            category=network_category(self.cloud.id),
            name=remote.name or remote.uuid,
            code=f"{network_category(self.cloud.id)}.{remote.uuid}",
            cloud_id=self.cloud.id,
            vlan_id=remote.vlan_id,
            unique_id=remote.uuid,
            external_id=remote.uuid,
            type=self._network_type(remote, network_types),
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            dhcp_server=True,
            active=self.cloud.default_network_sync_active,
        )
        if remote.managed:
            ip_config = remote.ip_config
            dhcp_options = ip_config.dhcp_options
            network.prefix_length = ip_config.prefix_length
            network.dhcp_ip = ip_config.dhcp_server_address
            network.dhcp_server = bool(ip_config.dhcp_server_address)
            network.subnet_address = ip_config.network_address
            network.gateway = ip_config.default_gateway
            network.tftp_server = dhcp_options.tftp_server_name if dhcp_options else None
            network.boot_file = dhcp_options.boot_file_name if dhcp_options else None
        return network

    def build_pool(self, remote: PrismNetwork, pool_server: Optional[NetworkPoolServer]) -> NetworkPool:
        ip_config = remote.ip_config
        dhcp_options = ip_config.dhcp_options
        pool = NetworkPool(
            category=network_category(self.cloud.id),
            name=ip_config.network_address,
            external_id=remote.uuid,
            type_code=POOL_TYPE_CODE,
            dns_domain=dhcp_options.domain_name if dhcp_options else None,
            dns_search_path=dhcp_options.domain_search if dhcp_options else None,
            dns_servers=[dhcp_options.domain_name_servers if dhcp_options else None],
            dhcp_server=bool(ip_config.dhcp_server_address),
            subnet_address=ip_config.network_address,
            gateway=ip_config.default_gateway,
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            owner_id=self.cloud.owner_id,
            account_id=self.cloud.account_id,
            ip_ranges=build_pool_ranges(ip_config),
        )
        if pool_server:
            pool.pool_server_id = pool_server.id
            pool.parent_type = POOL_PARENT_TYPE
            pool.parent_id = pool_server.id
        return pool

    def create_pool(self, remote: PrismNetwork, pool_server: Optional[NetworkPoolServer]) -> Optional[NetworkPool]:
        """Create the pool, then look it up again to get the stored record."""
        pool = self.build_pool(remote, pool_server)
        try:
            result = self.store.network_pools.bulk_create([pool])
            if not result.success:
                self.log_failures(result, "network pool create")
                return None
            return self.store.network_pools.find(
                ref_type=REF_TYPE_CLOUD,
                ref_id=self.cloud.id,
                external_id=pool.external_id,
            )
        except Exception as e:
            self.log(f"Error creating pool for network {remote.uuid}: {e}", "ERROR", exc_info=True)
            return None

    def add_missing_networks(self, add_items: List[PrismNetwork], network_types: Dict[str, NetworkType],
                             pool_server: Optional[NetworkPoolServer]):
        self.log(f"Adding {len(add_items)} network(s)", "DEBUG")
        try:
            network_adds = []
            for remote in add_items:
                network = self.build_network(remote, network_types)
                if remote.managed:
                    pool = self.create_pool(remote, pool_server)
                    if pool:
                        network.pool_id = pool.id
                network_adds.append(network)

            if network_adds:
                self.log_failures(self.store.networks.bulk_create(network_adds), "network create")
        except Exception as e:
            self.log(f"Error NetworkSync when adding: {e}", "ERROR", exc_info=True)

    def update_matched_networks(self, update_items: List[UpdateItem], network_types: Dict[str, NetworkType],
                                pool_server: Optional[NetworkPoolServer]):
        try:
            pool_ids = [item.existing_item.pool_id for item in update_items if item.existing_item.pool_id]
            pools = {pool.id: pool for pool in self.store.network_pools.list_by_id(pool_ids)} if pool_ids else {}

            network_updates = []
            for item in update_items:
                network: Network = item.existing_item
                remote: PrismNetwork = item.master_item

                changes = apply_changes(network, {
                    "name": remote.name or remote.uuid,
                    "type": self._network_type(remote, network_types),
                })

                pool = pools.get(network.pool_id)
                if pool:
                    self.update_pool(pool, remote, pool_server)

                if changes:
                    self.log(f"network {network.external_id} changed: {sorted(changes)}", "DEBUG")
                    network_updates.append(network)

            if network_updates:
                self.log_failures(self.store.networks.bulk_save(network_updates), "network save")
        except Exception as e:
            self.log(f"Error NetworkSync when updating: {e}", "ERROR", exc_info=True)

    def update_pool(self, pool: NetworkPool, remote: PrismNetwork, pool_server: Optional[NetworkPoolServer]):
        """Backfill ranges and repair ownership drift on an existing pool."""
        changed = False
        check_dupes = False

        if remote.managed and not pool.ip_ranges:
            ranges = build_pool_ranges(remote.ip_config)
            if ranges:
                pool.ip_ranges = ranges
                changed = True

        if pool_server and (pool.pool_server_id != pool_server.id or pool.parent_id != pool_server.id):
            pool.pool_server_id = pool_server.id
            pool.parent_type = POOL_PARENT_TYPE
            pool.parent_id = pool_server.id
            changed = True

        if not pool.type_code:
            pool.type_code = POOL_TYPE_CODE
            changed = True

        if pool.ref_type != REF_TYPE_CLOUD or pool.ref_id != self.cloud.id:
            pool.ref_type = REF_TYPE_CLOUD
            pool.ref_id = self.cloud.id
            changed = True
            check_dupes = True

        if changed:
            try:
                self.store.network_pools.save(pool)
            except Exception as e:
                self.log(f"Error saving pool {pool.external_id}: {e}", "ERROR", exc_info=True)
                return
        if check_dupes:
            self.check_for_dupe_pools(pool)

    def check_for_dupe_pools(self, pool: NetworkPool):
        """
        Remove pools duplicating (external_id, type) that no network in any
        nutanix cloud still points at. Repairs records left by older syncs.
        """
        try:
            candidates = self.store.network_pools.list(
                external_id=pool.external_id,
                type_code=pool.type_code,
                id__ne=pool.id,
            )
            if not candidates:
                return

            cloud_ids = {cloud.id for cloud in self.store.clouds.list(code=self.cloud.code)} | {self.cloud.id}
            referenced = set()
            for cloud_id in cloud_ids:
                for network in self.store.networks.list(category=network_category(cloud_id)):
                    if network.pool_id:
                        referenced.add(network.pool_id)

            dupes = [candidate for candidate in candidates if candidate.id not in referenced]
            if dupes:
                self.log(f"Removing {len(dupes)} duplicate pool(s) for {pool.external_id}", "WARN")
                self.log_failures(self.store.network_pools.bulk_remove(dupes), "duplicate pool remove")
        except Exception as e:
            self.log(f"duplicate pool check error: {e}", "ERROR", exc_info=True)

    def remove_missing_networks(self, remove_items: list):
        self.log(f"Removing {len(remove_items)} network(s)", "DEBUG")
        try:
            self.log_failures(self.store.networks.bulk_remove(remove_items), "network remove")
        except Exception as e:
            self.log(f"Error NetworkSync when removing: {e}", "ERROR", exc_info=True)
