"""Snapshot sync: Prism VM snapshots linked to the servers they were taken from"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from prism_sync.api.models import PrismSnapshot
from prism_sync.models import ComputeServer, Snapshot
from prism_sync.sync.base import BaseSync
from prism_sync.sync.task import SyncTask, UpdateItem


def snapshot_created(created_time: Optional[int]) -> Optional[datetime]:
    """Prism reports creation time in microseconds since the epoch."""
    if not created_time:
        return None
    return datetime.fromtimestamp(created_time / 1_000_000, tz=timezone.utc)


class SnapshotsSync(BaseSync):

    def execute(self):
        self.log("Executing snapshot sync")
        try:
            list_results = self.api.list_snapshots()
            if not list_results.success:
                self.log(f"Error listing snapshots: {list_results.msg}", "ERROR")
                return

            existing_items = self.store.snapshots.list_identity_projections(cloud_id=self.cloud.id)

            SyncTask(existing_items, list_results.items) \
                .add_match_function(lambda existing, remote: existing.external_id == remote.uuid) \
                .with_load_object_details_from_finder(lambda items: self.store.snapshots.list_by_id(self.ids(items))) \
                .on_add(self.add_missing_snapshots) \
                .on_update(self.update_matched_snapshots) \
                .on_delete(self.remove_missing_snapshots) \
                .start()
        except Exception as e:
            self.log(f"SnapshotsSync error: {e}", "ERROR", exc_info=True)

    def servers_by_external_id(self, vm_ids: List[str]) -> Dict[str, ComputeServer]:
        vm_ids = sorted({vm_id for vm_id in vm_ids if vm_id})
        if not vm_ids:
            return {}
        servers = self.store.servers.list(cloud_id=self.cloud.id, external_id__in=vm_ids)
        return {server.external_id: server for server in servers}

    def add_missing_snapshots(self, add_items: List[PrismSnapshot]):
        self.log(f"Adding {len(add_items)} snapshot(s)", "DEBUG")
        servers = self.servers_by_external_id([item.vm_uuid for item in add_items])
        snapshots = []
        for item in add_items:
            snapshot = Snapshot(
                account_id=self.cloud.account_id,
                cloud_id=self.cloud.id,
                name=item.snapshot_name,
                external_id=item.uuid,
                snapshot_created=snapshot_created(item.created_time),
            )
            server = servers.get(item.vm_uuid)
            if server:
                snapshot.server_id = server.id
                snapshot.account_id = server.account_id
            snapshots.append(snapshot)
        self.log_failures(self.store.snapshots.bulk_create(snapshots), "snapshot create")

    def update_matched_snapshots(self, update_items: List[UpdateItem]):
        servers = self.servers_by_external_id([item.master_item.vm_uuid for item in update_items])
        snapshots_to_update = []
        for item in update_items:
            snapshot: Snapshot = item.existing_item
            server = servers.get(item.master_item.vm_uuid)
            if server and snapshot.server_id == server.id and snapshot.account_id != server.account_id:
                snapshot.account_id = server.account_id
                snapshots_to_update.append(snapshot)

        if snapshots_to_update:
            self.log_failures(self.store.snapshots.bulk_save(snapshots_to_update), "snapshot save")

    def remove_missing_snapshots(self, remove_items: list):
        self.log(f"Removing {len(remove_items)} snapshot(s)", "DEBUG")
        self.log_failures(self.store.snapshots.bulk_remove(remove_items), "snapshot remove")
