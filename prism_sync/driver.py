"""
Cloud refresh driver

Runs one reconciliation pass for a Prism Element cloud: reachability and
credential checks, region code upkeep, then every reconciler in dependency
order. Reconcilers own their failures; the driver only turns unexpected
errors into a failed ServiceResponse.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from prism_sync.api.client import PrismApiClient
from prism_sync.api.service import PrismApiService
from prism_sync.connectivity import check_host_reachable
from prism_sync.models import Cloud, CloudStatus, ServiceResponse
from prism_sync.store.base import Store
from prism_sync.sync.containers import ContainersSync
from prism_sync.sync.hosts import HostsSync
from prism_sync.sync.images import ImagesSync
from prism_sync.sync.networks import NetworkSync
from prism_sync.sync.snapshots import SnapshotsSync
from prism_sync.sync.virtual_machines import VirtualMachinesSync
from prism_sync.utils import calculate_region_code

logger = logging.getLogger(__name__)

# Order matters: VMs link to hosts and networks, snapshots to VMs
SYNC_ORDER = (NetworkSync, ContainersSync, ImagesSync, HostsSync, VirtualMachinesSync, SnapshotsSync)

INVALID_CREDENTIALS = "nutanix invalid credentials"
HOST_NOT_REACHABLE = "nutanix host not reachable"


def cloud_api_url(cloud: Cloud) -> Optional[str]:
    return cloud.api_url or cloud.get_config_property("apiUrl")


class CloudSyncDriver:
    """Entry point the host scheduler calls for each Prism Element cloud"""

    def __init__(self, store: Store, client: Optional[PrismApiClient] = None,
                 api_factory: Optional[Callable[[PrismApiClient, Cloud], PrismApiService]] = None,
                 host_check: Callable[[Optional[str]], bool] = check_host_reachable):
        """
        Args:
            store: Persistence boundary
            client: Shared HTTP client (one is created if omitted)
            api_factory: Builds the per-cloud API service
            host_check: Reachability check for the cloud's API URL
        """
        self.store = store
        self.client = client or PrismApiClient()
        self.api_factory = api_factory or PrismApiService
        self.host_check = host_check

    def initialize_cloud(self, cloud: Optional[Cloud]) -> ServiceResponse:
        if cloud is None:
            return ServiceResponse.error("No cloud found")
        if cloud.enabled:
            return self.refresh(cloud)
        return ServiceResponse.ok()

    def refresh_daily(self, cloud: Cloud) -> ServiceResponse:
        """Long pass; nothing runs on the daily cadence."""
        return ServiceResponse.ok()

    def refresh(self, cloud: Cloud) -> ServiceResponse:
        """
        Run a full reconciliation pass for a cloud.

        Returns:
            ServiceResponse, successful unless an unexpected error escaped
            the checks. An unreachable cluster or rejected credentials mark
            the cloud offline and raise an alarm but still return success.
        """
        logger.info(f"refresh: {cloud.name}")
        sync_date = datetime.now(timezone.utc)
        try:
            api_url = cloud_api_url(cloud)
            if not self.host_check(api_url):
                self.mark_offline(cloud, HOST_NOT_REACHABLE, sync_date)
                return ServiceResponse.ok()

            api = self.api_factory(self.client, cloud)
            test_results = api.test_connection()
            if not test_results.get("success"):
                message = INVALID_CREDENTIALS if test_results.get("invalid_login") else HOST_NOT_REACHABLE
                self.mark_offline(cloud, message, sync_date)
                return ServiceResponse.ok()

            self.refresh_region_code(cloud, api_url)
            self.update_cloud_status(cloud, CloudStatus.SYNCING, None, sync_date)
            for sync_class in SYNC_ORDER:
                sync_class(cloud, api, self.store).execute()

            cloud.alarm = None
            cloud.last_sync = sync_date
            self.update_cloud_status(cloud, CloudStatus.OK, None, sync_date)
        except Exception as e:
            logger.error(f"refresh cloud error: {e}", exc_info=True)
            return ServiceResponse.error(f"refresh cloud error: {e}")
        return ServiceResponse.ok()

    def mark_offline(self, cloud: Cloud, message: str, sync_date: datetime):
        logger.warning(f"{cloud.name}: {message}")
        cloud.alarm = message
        self.update_cloud_status(cloud, CloudStatus.OFFLINE, message, sync_date)

    def update_cloud_status(self, cloud: Cloud, status: CloudStatus, message: Optional[str], sync_date: datetime):
        cloud.status = status.value
        cloud.status_message = message
        cloud.status_date = sync_date
        if cloud.id is not None and self.store.clouds.save(cloud) is None:
            logger.warning(f"cloud {cloud.id} not saved")

    def refresh_region_code(self, cloud: Cloud, api_url: Optional[str]):
        region_code = calculate_region_code(api_url)
        if cloud.region_code == region_code:
            return
        if cloud.region_code:
            self.convert_old_region_codes(cloud.region_code, region_code)
        cloud.region_code = region_code
        if cloud.id is not None:
            self.store.clouds.save(cloud)

    def convert_old_region_codes(self, old_region_code: str, new_region_code: str):
        """Move image locations, images and plans cached under the old region code."""
        conversions = (
            (self.store.image_locations, "image_region", "virtual image locations"),
            (self.store.images, "image_region", "virtual images"),
            (self.store.plans, "region_code", "service plans"),
        )
        for repository, field_name, label in conversions:
            records: List = repository.list(**{field_name: old_region_code})
            for record in records:
                setattr(record, field_name, new_region_code)
            if records:
                result = repository.bulk_save(records)
                if result.failed_items:
                    codes = [getattr(item, "code", None) for item in result.failed_items]
                    logger.error(f"Failed to update new region code for {label}: {codes}")
