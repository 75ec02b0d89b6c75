"""
Persistence boundary consumed by the reconcilers.

The orchestrator owns the real persistence layer; the engine only needs a
repository per record type exposing identity projections, batch hydration
and single/bulk writes. Filters are keyword arguments, ``field=value`` for
equality with ``__in``, ``__ne`` and ``__isnull`` suffixes and ``__`` for
nested attributes (``compute_server_type__code__ne="nutanixMetalHypervisor"``).
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, List, Optional, TypeVar

from pydantic import BaseModel

from prism_sync.models import (
    ComputeServer,
    ComputeServerInterface,
    IdentityProjection,
    StorageVolume,
)

T = TypeVar("T")


class BulkResult(BaseModel):
    """Result envelope for bulk writes; partial success is normal."""
    success: bool = True
    persisted: List[Any] = []
    failed_items: List[Any] = []


class Repository(ABC, Generic[T]):
    """Read/write access to one record type."""

    @abstractmethod
    def list_identity_projections(self, **filters) -> List[IdentityProjection]:
        ...

    @abstractmethod
    def list_by_id(self, ids: Iterable[int]) -> List[T]:
        ...

    @abstractmethod
    def list(self, **filters) -> List[T]:
        ...

    def find(self, **filters) -> Optional[T]:
        matches = self.list(**filters)
        return matches[0] if matches else None

    @abstractmethod
    def get(self, record_id: int) -> Optional[T]:
        ...

    @abstractmethod
    def create(self, item: T) -> Optional[T]:
        ...

    @abstractmethod
    def bulk_create(self, items: List[T]) -> BulkResult:
        ...

    @abstractmethod
    def save(self, item: T) -> Optional[T]:
        ...

    @abstractmethod
    def bulk_save(self, items: List[T]) -> BulkResult:
        ...

    @abstractmethod
    def remove(self, items: List[Any]) -> bool:
        """Remove records given full entities or identity projections."""
        ...

    @abstractmethod
    def bulk_remove(self, items: List[Any]) -> BulkResult:
        ...


class ServerChildRepository(ABC, Generic[T]):
    """
    Volumes and interfaces are owned by a server; writes go through the
    owning server so the store can cascade.
    """

    @abstractmethod
    def create(self, items: List[T], server: ComputeServer) -> bool:
        ...

    @abstractmethod
    def bulk_save(self, items: List[T]) -> BulkResult:
        ...

    @abstractmethod
    def remove(self, items: List[T], server: ComputeServer) -> bool:
        ...


class Store(ABC):
    """
    Aggregate of repositories, one attribute per record type.

    Catalog repositories (``network_types``, ``volume_types``,
    ``interface_types``, ``server_types``, ``os_types``) are read-only from
    the engine's point of view.
    """

    clouds: Repository
    networks: Repository
    network_pools: Repository
    network_pool_servers: Repository
    network_types: Repository
    datastores: Repository
    servers: Repository
    server_types: Repository
    os_types: Repository
    volumes: ServerChildRepository[StorageVolume]
    volume_types: Repository
    interfaces: ServerChildRepository[ComputeServerInterface]
    interface_types: Repository
    plans: Repository
    permissions: Repository
    workloads: Repository
    instances: Repository
    snapshots: Repository
    images: Repository
    image_locations: Repository
