"""Per-entity reconcilers and the diff engine they share"""

from prism_sync.sync.containers import ContainersSync
from prism_sync.sync.hosts import HostsSync
from prism_sync.sync.images import ImagesSync
from prism_sync.sync.networks import NetworkSync
from prism_sync.sync.snapshots import SnapshotsSync
from prism_sync.sync.task import DiffResult, SyncTask, UpdateItem
from prism_sync.sync.virtual_machines import VirtualMachinesSync

__all__ = [
    "ContainersSync",
    "DiffResult",
    "HostsSync",
    "ImagesSync",
    "NetworkSync",
    "SnapshotsSync",
    "SyncTask",
    "UpdateItem",
    "VirtualMachinesSync",
]
