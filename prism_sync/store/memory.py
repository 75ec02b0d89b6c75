"""
In-memory store.

Reference implementation of the persistence boundary used by tests and by
host processes that keep the mirrored inventory in-process. Records are
deep-copied on the way in and out so callers never share state with the
store, and every write is appended to ``writes`` for auditing.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from prism_sync.models import (
    Cloud,
    ComputeServer,
    ComputeServerInterfaceType,
    ComputeServerType,
    Datastore,
    Entity,
    IdentityProjection,
    Instance,
    Network,
    NetworkPool,
    NetworkPoolServer,
    NetworkType,
    OsType,
    ResourcePermission,
    ServicePlan,
    Snapshot,
    StorageVolumeType,
    VirtualImage,
    VirtualImageLocation,
    Workload,
)
from prism_sync.store.base import BulkResult, Repository, ServerChildRepository, Store

logger = logging.getLogger(__name__)

OPERATORS = ("in", "ne", "isnull")


def _resolve(record: Any, path: List[str]) -> Any:
    value = record
    for part in path:
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def matches_filters(record: Any, filters: Dict[str, Any]) -> bool:
    """Evaluate keyword filters against one record."""
    for key, expected in filters.items():
        parts = key.split("__")
        op = parts.pop() if parts[-1] in OPERATORS else "eq"
        actual = _resolve(record, parts)
        if op == "eq" and actual != expected:
            return False
        if op == "ne" and actual == expected:
            return False
        if op == "in" and actual not in list(expected or []):
            return False
        if op == "isnull" and (actual is None) != bool(expected):
            return False
    return True


class MemoryRepository(Repository):
    """Dict-backed repository keyed by local id."""

    def __init__(self, model: Type[Entity], name: Optional[str] = None):
        self.model = model
        self.name = name or model.__name__
        self._records: Dict[int, Entity] = {}
        self._next_id = 1
        self._lock = threading.RLock()
        self.writes: List[Tuple[str, int]] = []

    def _record_write(self, operation: str, count: int):
        self.writes.append((operation, count))
        logger.debug(f"{self.name}.{operation}: {count} record(s)")

    def _assign_id(self) -> int:
        record_id = self._next_id
        self._next_id += 1
        return record_id

    def seed(self, *items: Entity) -> List[Entity]:
        """Insert fixture records without logging a write."""
        with self._lock:
            for item in items:
                if item.id is None:
                    item.id = self._assign_id()
                else:
                    self._next_id = max(self._next_id, item.id + 1)
                self._records[item.id] = item.model_copy(deep=True)
        return list(items)

    def all(self) -> List[Entity]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._records.values()]

    def list_identity_projections(self, **filters) -> List[IdentityProjection]:
        with self._lock:
            return [
                record.to_projection()
                for record in self._records.values()
                if matches_filters(record, filters)
            ]

    def list_by_id(self, ids: Iterable[int]) -> List[Entity]:
        with self._lock:
            return [
                self._records[record_id].model_copy(deep=True)
                for record_id in ids
                if record_id in self._records
            ]

    def list(self, **filters) -> List[Entity]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if matches_filters(record, filters)
            ]

    def get(self, record_id: int) -> Optional[Entity]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def _insert(self, item: Entity) -> Entity:
        item.id = self._assign_id()
        self._records[item.id] = item.model_copy(deep=True)
        return item.model_copy(deep=True)

    def create(self, item: Entity) -> Optional[Entity]:
        with self._lock:
            created = self._insert(item)
            self._record_write("create", 1)
            return created

    def bulk_create(self, items: List[Entity]) -> BulkResult:
        with self._lock:
            persisted = [self._insert(item) for item in items]
            self._record_write("bulk_create", len(persisted))
            return BulkResult(success=True, persisted=persisted)

    def save(self, item: Entity) -> Optional[Entity]:
        with self._lock:
            if item.id not in self._records:
                return None
            self._records[item.id] = item.model_copy(deep=True)
            self._record_write("save", 1)
            return item.model_copy(deep=True)

    def bulk_save(self, items: List[Entity]) -> BulkResult:
        with self._lock:
            result = BulkResult()
            for item in items:
                if item.id in self._records:
                    self._records[item.id] = item.model_copy(deep=True)
                    result.persisted.append(item)
                else:
                    result.failed_items.append(item)
            result.success = not result.failed_items
            self._record_write("bulk_save", len(result.persisted))
            return result

    def remove(self, items: List[Any]) -> bool:
        return self.bulk_remove(items).success

    def bulk_remove(self, items: List[Any]) -> BulkResult:
        with self._lock:
            result = BulkResult()
            for item in items:
                if self._records.pop(item.id, None) is not None:
                    result.persisted.append(item)
                else:
                    result.failed_items.append(item)
            result.success = not result.failed_items
            self._record_write("bulk_remove", len(result.persisted))
            return result


class MemoryServerChildRepository(ServerChildRepository):
    """Volumes or interfaces stored on their owning server record."""

    def __init__(self, servers: MemoryRepository, attribute: str):
        self.servers = servers
        self.attribute = attribute
        self.name = attribute
        self.writes: List[Tuple[str, int]] = []

    def _owned(self, server_id: int) -> List[Entity]:
        record = self.servers._records.get(server_id)
        if record is None:
            raise KeyError(f"server {server_id} not found")
        return getattr(record, self.attribute)

    def _max_child_id(self) -> int:
        ids = [
            child.id or 0
            for record in self.servers._records.values()
            for child in getattr(record, self.attribute)
        ]
        return max(ids, default=0)

    def create(self, items: List[Entity], server: ComputeServer) -> bool:
        with self.servers._lock:
            stored = self._owned(server.id)
            next_id = self._max_child_id() + 1
            for item in items:
                item.id = next_id
                next_id += 1
                item.server_id = server.id
                stored.append(item.model_copy(deep=True))
                getattr(server, self.attribute).append(item)
            self.writes.append(("create", len(items)))
            return True

    def bulk_save(self, items: List[Entity]) -> BulkResult:
        with self.servers._lock:
            result = BulkResult()
            for item in items:
                try:
                    stored = self._owned(item.server_id)
                except KeyError:
                    result.failed_items.append(item)
                    continue
                for index, existing in enumerate(stored):
                    if existing.id == item.id:
                        stored[index] = item.model_copy(deep=True)
                        result.persisted.append(item)
                        break
                else:
                    result.failed_items.append(item)
            result.success = not result.failed_items
            self.writes.append(("bulk_save", len(result.persisted)))
            return result

    def remove(self, items: List[Entity], server: ComputeServer) -> bool:
        with self.servers._lock:
            removed_ids = {item.id for item in items}
            stored = self._owned(server.id)
            stored[:] = [existing for existing in stored if existing.id not in removed_ids]
            owned = getattr(server, self.attribute)
            owned[:] = [existing for existing in owned if existing.id not in removed_ids]
            self.writes.append(("remove", len(removed_ids)))
            return True


class MemoryStore(Store):
    """All repositories backed by process memory."""

    def __init__(self):
        self.clouds = MemoryRepository(Cloud)
        self.networks = MemoryRepository(Network)
        self.network_pools = MemoryRepository(NetworkPool)
        self.network_pool_servers = MemoryRepository(NetworkPoolServer)
        self.network_types = MemoryRepository(NetworkType)
        self.datastores = MemoryRepository(Datastore)
        self.servers = MemoryRepository(ComputeServer)
        self.server_types = MemoryRepository(ComputeServerType)
        self.os_types = MemoryRepository(OsType)
        self.volumes = MemoryServerChildRepository(self.servers, "volumes")
        self.volume_types = MemoryRepository(StorageVolumeType)
        self.interfaces = MemoryServerChildRepository(self.servers, "interfaces")
        self.interface_types = MemoryRepository(ComputeServerInterfaceType)
        self.plans = MemoryRepository(ServicePlan)
        self.permissions = MemoryRepository(ResourcePermission)
        self.workloads = MemoryRepository(Workload)
        self.instances = MemoryRepository(Instance)
        self.snapshots = MemoryRepository(Snapshot)
        self.images = MemoryRepository(VirtualImage)
        self.image_locations = MemoryRepository(VirtualImageLocation)

    def repositories(self) -> list:
        return [value for value in vars(self).values() if hasattr(value, "writes")]

    def write_count(self) -> int:
        """Number of write calls since construction or the last reset (seeding excluded)."""
        return sum(len(repo.writes) for repo in self.repositories())

    def reset_write_log(self):
        for repo in self.repositories():
            repo.writes.clear()
