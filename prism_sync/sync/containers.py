"""Storage container sync: Prism storage containers become generic datastores"""

from typing import List

from prism_sync.api.models import PrismContainer
from prism_sync.config import MANAGEMENT_SHARE_NAME
from prism_sync.models import Datastore
from prism_sync.sync.base import REF_TYPE_CLOUD, BaseSync
from prism_sync.sync.task import SyncTask, UpdateItem


def datastore_category(cloud_id: int) -> str:
    return f"nutanix.acropolis.datastore.{cloud_id}"


class ContainersSync(BaseSync):
    """Adds and removes datastores; existing datastores are left as they are"""

    def execute(self):
        self.log("Executing container sync")
        try:
            list_results = self.api.list_containers()
            if not list_results.success:
                self.log(f"Error listing containers: {list_results.msg}", "ERROR")
                return

            # the CVM management share is never a usable datastore
            containers = [
                container for container in list_results.items
                if (container.name or "").lower() != MANAGEMENT_SHARE_NAME
            ]
            existing_items = self.store.datastores.list_identity_projections(
                ref_type=REF_TYPE_CLOUD,
                ref_id=self.cloud.id,
                type="generic",
            )

            SyncTask(existing_items, containers) \
                .add_match_function(lambda existing, remote: existing.external_id == remote.uuid) \
                .with_load_object_details_from_finder(lambda items: self.store.datastores.list_by_id(self.ids(items))) \
                .on_add(self.add_missing_datastores) \
                .on_update(self.update_matched_datastores) \
                .on_delete(self.remove_missing_datastores) \
                .start()
        except Exception as e:
            self.log(f"ContainersSync error: {e}", "ERROR", exc_info=True)

    def build_datastore(self, container: PrismContainer) -> Datastore:
        return Datastore(
            owner_id=self.cloud.owner_id,
            name=container.name,
            code=f"{datastore_category(self.cloud.id)}.{container.id}",
            category=datastore_category(self.cloud.id),
            cloud_id=self.cloud.id,
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            internal_id=container.id,
            external_id=container.uuid,
            storage_size=container.max_storage or 0,
            free_space=container.free_storage or 0,
            active=self.cloud.default_datastore_sync_active,
        )

    def add_missing_datastores(self, add_items: List[PrismContainer]):
        self.log(f"Adding {len(add_items)} datastore(s)", "DEBUG")
        datastores = [self.build_datastore(container) for container in add_items]
        self.log_failures(self.store.datastores.bulk_create(datastores), "datastore create")

    def update_matched_datastores(self, update_items: List[UpdateItem]):
        # capacity of known datastores is intentionally not refreshed
        self.log(f"{len(update_items)} datastore(s) unchanged", "DEBUG")

    def remove_missing_datastores(self, remove_items: list):
        self.log(f"Removing {len(remove_items)} datastore(s)", "DEBUG")
        self.log_failures(self.store.datastores.bulk_remove(remove_items), "datastore remove")
