"""
VM disk sync

Mirrors a VM's Prism disks as storage volumes on its compute server.
Device names are derived from bus type and position on every pass and never
read back from stored state.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from prism_sync.api.models import PrismVmDisk
from prism_sync.models import ComputeServer, StorageVolume, StorageVolumeType
from prism_sync.sync.base import REF_TYPE_CLOUD, ServerChildSync
from prism_sync.sync.changes import apply_changes
from prism_sync.sync.task import SyncTask, UpdateItem

ROOT_DEVICE_NAME = "sda"


def letter_index(index: int) -> str:
    """
    Base-26 letters for a device index: 0 -> a, 25 -> z, 26 -> ba.

    Digits are generated least significant first, then reversed.
    """
    letters = ""
    while True:
        letters += chr(ord("a") + index % 26)
        index //= 26
        if index <= 0:
            break
    return letters[::-1]


def disk_position(disk: PrismVmDisk, disk_list: List[PrismVmDisk]) -> int:
    """
    Linear position of a disk across buses.

    Prism numbers each bus from zero; SATA disks are placed after every
    SCSI disk of the VM.
    """
    position = disk.device_index
    if disk.bus == "SATA":
        position += sum(1 for other in disk_list if other.bus == "SCSI")
    return position


def generate_volume_device_name(disk: PrismVmDisk, disk_list: List[PrismVmDisk]) -> str:
    prefix = "sd" if disk.bus in ("SCSI", "SATA") else "hd"
    return prefix + letter_index(disk_position(disk, disk_list))


def volume_type_external_id(disk: PrismVmDisk) -> str:
    return f"nutanix_{disk.bus}"


@dataclass
class VolumeSyncResult:
    save_required: bool = False
    max_storage: int = 0


class VolumesSync(ServerChildSync):
    """Reconciles one server's storage volumes against its Prism disks"""

    def execute(self, server: ComputeServer, disk_list: List[PrismVmDisk]) -> VolumeSyncResult:
        """
        Args:
            server: Stored server whose volumes are reconciled
            disk_list: Full Prism disk list, CD-ROMs included

        Returns:
            VolumeSyncResult with the summed size of every matched or added disk
        """
        rtn = VolumeSyncResult()
        self._volume_types: Dict[str, Optional[StorageVolumeType]] = {}
        try:
            disk_list = list(disk_list or [])
            disks = [disk for disk in disk_list if not disk.is_cdrom]

            SyncTask(server.volumes, disks) \
                .add_match_function(
                    lambda volume, disk: bool(disk.disk_address.vmdisk_uuid)
                    and volume.external_id == disk.disk_address.vmdisk_uuid) \
                .add_match_function(
                    lambda volume, disk: volume.device_display_name == generate_volume_device_name(disk, disk_list)
                    and volume.type is not None
                    and volume.type.external_id == volume_type_external_id(disk)) \
                .add_match_function(
                    lambda volume, disk: volume.display_order == disk_position(disk, disk_list)) \
                .on_add(lambda items: self.add_volumes(server, items, disk_list, rtn)) \
                .on_update(lambda items: self.update_volumes(items, disk_list, rtn)) \
                .on_delete(lambda items: self.remove_volumes(server, items, rtn)) \
                .start()
        except Exception as e:
            self.log(f"error syncing volumes for {server.name}: {e}", "ERROR", exc_info=True)
        return rtn

    def _volume_type(self, disk: PrismVmDisk) -> Optional[StorageVolumeType]:
        key = volume_type_external_id(disk)
        if key not in self._volume_types:
            self._volume_types[key] = self.store.volume_types.find(external_id=key)
        return self._volume_types[key]

    def _datastore_id(self, disk: PrismVmDisk) -> Optional[int]:
        if not disk.storage_container_uuid:
            return None
        datastore = self.store.datastores.find(
            ref_type=REF_TYPE_CLOUD,
            ref_id=self.cloud.id,
            external_id=disk.storage_container_uuid,
        )
        return datastore.id if datastore else None

    def add_volumes(self, server: ComputeServer, add_items: List[PrismVmDisk], disk_list: List[PrismVmDisk],
                    rtn: VolumeSyncResult):
        volumes = []
        for disk in add_items:
            volume_type = self._volume_type(disk)
            if not volume_type:
                self.log(f"no volume type {volume_type_external_id(disk)} for disk {disk.disk_address.vmdisk_uuid}", "ERROR")
                continue

            device_name = generate_volume_device_name(disk, disk_list)
            volume_id = disk.disk_address.vmdisk_uuid
            max_storage = disk.size or 0
            volumes.append(StorageVolume(
                name=volume_id,
                external_id=volume_id,
                type=volume_type,
                max_storage=max_storage,
                unit_number=str(disk.device_index),
                display_order=disk_position(disk, disk_list),
                device_name=f"/dev/{device_name}",
                device_display_name=device_name,
                root_volume=device_name == ROOT_DEVICE_NAME,
                datastore_id=self._datastore_id(disk),
                cloud_id=self.cloud.id,
            ))
            rtn.max_storage += max_storage

        if volumes:
            if not self.store.volumes.create(volumes, server):
                self.log(f"failed to create storage volume(s) for server {server.name}", "ERROR")
            rtn.save_required = True

    def update_volumes(self, update_items: List[UpdateItem], disk_list: List[PrismVmDisk], rtn: VolumeSyncResult):
        volumes = []
        for item in update_items:
            volume: StorageVolume = item.existing_item
            disk: PrismVmDisk = item.master_item
            device_name = generate_volume_device_name(disk, disk_list)
            max_storage = disk.size or 0

            changes = apply_changes(volume, {
                "max_storage": max_storage,
                "unit_number": str(disk.device_index),
                "display_order": disk_position(disk, disk_list),
                "device_name": f"/dev/{device_name}",
                "device_display_name": device_name,
                "root_volume": device_name == ROOT_DEVICE_NAME,
                "external_id": disk.disk_address.vmdisk_uuid,
            })
            if changes:
                volumes.append(volume)
            rtn.max_storage += max_storage

        if volumes:
            rtn.save_required = True
            self.log_failures(self.store.volumes.bulk_save(volumes), "volume save")

    def remove_volumes(self, server: ComputeServer, remove_items: List[StorageVolume], rtn: VolumeSyncResult):
        self.log(f"removing {len(remove_items)} volume(s) from {server.name}", "DEBUG")
        self.store.volumes.remove(remove_items, server)
        rtn.save_required = True
