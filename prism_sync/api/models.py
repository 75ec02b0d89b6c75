"""
Typed views of Prism Element responses.

Field names follow the v2 REST payloads; v1 camelCase names are mapped via
aliases where a record is only available from the v1 API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from prism_sync.utils import to_int


class PrismModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# Networks

class PrismDhcpOptions(PrismModel):
    domain_name_servers: Optional[str] = None
    domain_name: Optional[str] = None
    domain_search: Optional[str] = None
    tftp_server_name: Optional[str] = None
    boot_file_name: Optional[str] = None


class PrismPoolRange(PrismModel):
    range: Optional[str] = None


class PrismIpConfig(PrismModel):
    network_address: Optional[str] = None
    prefix_length: Optional[int] = None
    default_gateway: Optional[str] = None
    dhcp_server_address: Optional[str] = None
    pool: List[PrismPoolRange] = []
    dhcp_options: Optional[PrismDhcpOptions] = None


class PrismNetwork(PrismModel):
    uuid: str
    name: Optional[str] = None
    vlan_id: Optional[int] = None
    ip_config: Optional[PrismIpConfig] = None

    @property
    def managed(self) -> bool:
        """Prism manages IPAM for networks that carry an address space."""
        return bool(self.ip_config and self.ip_config.network_address)


# Storage containers, normalized by the API shape

class PrismContainer(PrismModel):
    id: Optional[str] = None
    uuid: str
    name: Optional[str] = None
    max_storage: int = 0
    free_storage: int = 0
    cluster_uuid: Optional[str] = None
    replication_factor: Optional[int] = None


# Hosts

class PrismHost(PrismModel):
    uuid: str
    name: Optional[str] = None
    hypervisor_address: Optional[str] = None
    ipmi_address: Optional[str] = None
    state: Optional[str] = None
    memory_capacity_in_bytes: Optional[int] = None
    num_cpu_cores: Optional[int] = None
    num_cpu_sockets: Optional[int] = None

    @property
    def powered_on(self) -> bool:
        # older releases report COMPLETE, current ones NORMAL
        return self.state in ("COMPLETE", "NORMAL")

    @property
    def total_cores(self) -> int:
        return (self.num_cpu_cores or 0) * (self.num_cpu_sockets or 0)


# Virtual machines

class PrismDiskAddress(PrismModel):
    vmdisk_uuid: Optional[str] = None
    device_bus: Optional[str] = None
    device_index: Optional[int] = None
    disk_label: Optional[str] = None


class PrismVmDisk(PrismModel):
    disk_address: PrismDiskAddress = Field(default_factory=PrismDiskAddress)
    is_cdrom: bool = False
    size: Optional[int] = None
    storage_container_uuid: Optional[str] = None

    @property
    def bus(self) -> str:
        return (self.disk_address.device_bus or "").upper()

    @property
    def device_index(self) -> int:
        return self.disk_address.device_index or 0


class PrismVmNic(PrismModel):
    mac_address: Optional[str] = None
    network_uuid: Optional[str] = None
    ip_address: Optional[str] = None
    ip_addresses: List[str] = []
    adapter_type: Optional[str] = None
    is_connected: Optional[bool] = None

    @property
    def primary_ip(self) -> Optional[str]:
        return self.ip_addresses[0] if self.ip_addresses else self.ip_address


class PrismLegacyVm(PrismModel):
    """v1 VM record; carries guest hostname and utilization stats."""
    uuid: Optional[str] = None
    host_name: Optional[str] = Field(default=None, alias="hostName")
    memory_capacity_in_bytes: Optional[int] = Field(default=None, alias="memoryCapacityInBytes")
    stats: Dict[str, Any] = {}

    def stat(self, key: str) -> int:
        return to_int(self.stats.get(key))


class PrismVm(PrismModel):
    uuid: str
    name: Optional[str] = None
    power_state: Optional[str] = None
    num_vcpus: Optional[int] = None
    num_cores_per_vcpu: Optional[int] = None
    memory_mb: Optional[int] = None
    host_uuid: Optional[str] = None
    vm_disk_info: List[PrismVmDisk] = []
    vm_nics: List[PrismVmNic] = []
    legacy_vm: Optional[PrismLegacyVm] = None

    @property
    def external_id(self) -> str:
        return self.uuid

    @property
    def powered_on(self) -> bool:
        return (self.power_state or "").upper() == "ON"

    @property
    def first_ip_address(self) -> Optional[str]:
        for nic in self.vm_nics:
            if nic.ip_address:
                return nic.ip_address
        return None


# Snapshots and images

class PrismSnapshot(PrismModel):
    uuid: str
    snapshot_name: Optional[str] = None
    created_time: Optional[int] = None
    vm_uuid: Optional[str] = None


class PrismImage(PrismModel):
    uuid: str
    name: Optional[str] = None
    image_status: Optional[str] = None
    image_type: str = "qcow2"
    vm_disk_id: Optional[str] = None
    container_id: Optional[str] = None
    container_uuid: Optional[str] = None
    deleted: Optional[bool] = None
    timestamp: Optional[int] = None


class PrismTask(PrismModel):
    uuid: Optional[str] = None
    progress_status: Optional[str] = None
    percentage_complete: Optional[int] = None
    meta_response: Optional[Dict[str, Any]] = None
    entity_list: List[Dict[str, Any]] = []
