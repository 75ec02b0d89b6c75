"""Base class for the per-entity reconcilers"""

import logging
from typing import Any, List

from prism_sync.api.service import PrismApiService
from prism_sync.models import Cloud
from prism_sync.store.base import BulkResult, Store

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

REF_TYPE_CLOUD = "ComputeZone"


class BaseSync:
    """Shared plumbing for reconcilers: cloud context, API service, store and logging"""

    def __init__(self, cloud: Cloud, api: PrismApiService, store: Store):
        """
        Initialize reconciler for one cloud

        Args:
            cloud: Cloud being refreshed
            api: API service bound to the cloud's cluster
            store: Persistence boundary
        """
        self.cloud = cloud
        self.api = api
        self.store = store
        self.logger = logging.getLogger(type(self).__module__)

    def log(self, message: str, level: str = "INFO", exc_info: bool = False):
        """
        Log message tagged with the cloud name

        Args:
            message: Log message
            level: Log level (INFO, WARN, ERROR, DEBUG)
            exc_info: Attach the active exception's traceback
        """
        self.logger.log(LOG_LEVELS.get(level, logging.INFO), f"[{self.cloud.name}] {message}", exc_info=exc_info)

    def log_failures(self, result: BulkResult, operation: str) -> BulkResult:
        """Log the identifying codes of items a bulk write rejected."""
        if result is not None and result.failed_items:
            codes = [self._identify(item) for item in result.failed_items]
            self.log(f"{operation}: {len(codes)} item(s) failed: {codes}", "ERROR")
        return result

    @staticmethod
    def _identify(item: Any) -> Any:
        return getattr(item, "code", None) or getattr(item, "external_id", None) or getattr(item, "id", None)

    def execute(self):
        raise NotImplementedError

    @staticmethod
    def ids(items: List[Any]) -> List[int]:
        return [item.existing_item.id for item in items]


class ServerChildSync(BaseSync):
    """Reconciler for records owned by one server; runs inside a VM pass and makes no API calls"""

    def __init__(self, cloud: Cloud, store: Store):
        super().__init__(cloud, None, store)
