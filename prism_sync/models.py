"""
Pydantic models for the orchestrator-side records the reconcilers maintain.

Every persisted record carries a local integer ``id`` assigned by the store
and, for anything mirrored from Prism, the remote ``external_id``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel


class PowerState(str, Enum):
    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"


class ServerStatus(str, Enum):
    PROVISIONING = "provisioning"
    PROVISIONED = "provisioned"
    RESIZING = "resizing"
    FAILED = "failed"


class CloudStatus(str, Enum):
    OK = "ok"
    SYNCING = "syncing"
    OFFLINE = "offline"
    ERROR = "error"


class AddressType(str, Enum):
    IPV4 = "IPV4"
    IPV6 = "IPV6"


TRANSITIONAL_STATUSES = (ServerStatus.PROVISIONING.value, ServerStatus.RESIZING.value)


class IdentityProjection(BaseModel):
    """Lightweight view of a stored record used for matching."""
    id: int
    external_id: Optional[str] = None
    name: Optional[str] = None
    keys: Dict[str, Any] = {}


class Entity(BaseModel):
    """Base for stored records."""
    id: Optional[int] = None

    # extra attributes copied onto the identity projection
    projection_keys: ClassVar[Tuple[str, ...]] = ()

    def to_projection(self) -> IdentityProjection:
        return IdentityProjection(
            id=self.id,
            external_id=getattr(self, "external_id", None),
            name=getattr(self, "name", None),
            keys={key: getattr(self, key, None) for key in self.projection_keys},
        )


class Cloud(Entity):
    """A Prism Element cluster registered with the orchestrator."""
    name: str
    code: str = "nutanix"
    account_id: Optional[int] = None
    owner_id: Optional[int] = None
    enabled: bool = True
    api_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    config: Dict[str, Any] = {}
    region_code: Optional[str] = None
    default_network_sync_active: bool = True
    default_datastore_sync_active: bool = True
    status: Optional[str] = None
    status_message: Optional[str] = None
    status_date: Optional[datetime] = None
    last_sync: Optional[datetime] = None
    alarm: Optional[str] = None

    def get_config_property(self, name: str, default: Any = None) -> Any:
        return self.config.get(name, default)


# Catalog records

class NetworkType(Entity):
    code: str
    name: Optional[str] = None


class StorageVolumeType(Entity):
    code: str
    external_id: Optional[str] = None
    name: Optional[str] = None


class ComputeServerInterfaceType(Entity):
    code: str
    external_id: Optional[str] = None
    name: Optional[str] = None


class ComputeServerType(Entity):
    code: str
    name: Optional[str] = None
    guest_vm: bool = False


class OsType(Entity):
    code: str
    platform: Optional[str] = None


class NetworkPoolServer(Entity):
    name: str
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None


# Networks

class NetworkPoolRange(BaseModel):
    start_address: str
    end_address: str
    external_id: Optional[str] = None


class NetworkPool(Entity):
    name: Optional[str] = None
    category: Optional[str] = None
    external_id: Optional[str] = None
    type_code: Optional[str] = None
    dns_domain: Optional[str] = None
    dns_search_path: Optional[str] = None
    dns_servers: List[Optional[str]] = []
    dhcp_server: bool = False
    subnet_address: Optional[str] = None
    gateway: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    owner_id: Optional[int] = None
    account_id: Optional[int] = None
    pool_server_id: Optional[int] = None
    parent_type: Optional[str] = None
    parent_id: Optional[int] = None
    ip_ranges: List[NetworkPoolRange] = []


class Network(Entity):
    name: Optional[str] = None
    code: Optional[str] = None
    category: Optional[str] = None
    cloud_id: Optional[int] = None
    owner_id: Optional[int] = None
    external_id: Optional[str] = None
    unique_id: Optional[str] = None
    vlan_id: Optional[int] = None
    type: Optional[NetworkType] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    dhcp_server: bool = True
    active: bool = True
    prefix_length: Optional[int] = None
    dhcp_ip: Optional[str] = None
    subnet_address: Optional[str] = None
    gateway: Optional[str] = None
    tftp_server: Optional[str] = None
    boot_file: Optional[str] = None
    pool_id: Optional[int] = None


# Storage

class Datastore(Entity):
    name: Optional[str] = None
    code: Optional[str] = None
    category: Optional[str] = None
    type: str = "generic"
    cloud_id: Optional[int] = None
    owner_id: Optional[int] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    internal_id: Optional[str] = None
    external_id: Optional[str] = None
    storage_size: int = 0
    free_space: int = 0
    active: bool = True


class StorageVolume(Entity):
    name: Optional[str] = None
    external_id: Optional[str] = None
    type: Optional[StorageVolumeType] = None
    max_storage: int = 0
    unit_number: Optional[str] = None
    display_order: int = 0
    device_name: Optional[str] = None
    device_display_name: Optional[str] = None
    root_volume: bool = False
    datastore_id: Optional[int] = None
    cloud_id: Optional[int] = None
    server_id: Optional[int] = None


# Servers

class NetAddress(BaseModel):
    type: AddressType = AddressType.IPV4
    address: Optional[str] = None


class ComputeServerInterface(Entity):
    name: Optional[str] = None
    external_id: Optional[str] = None
    mac_address: Optional[str] = None
    network_id: Optional[int] = None
    type: Optional[ComputeServerInterfaceType] = None
    addresses: List[NetAddress] = []
    display_order: int = 0
    server_id: Optional[int] = None

    projection_keys: ClassVar[Tuple[str, ...]] = ("mac_address",)

    @property
    def ip_address(self) -> Optional[str]:
        for address in self.addresses:
            if address.type == AddressType.IPV4 and address.address:
                return address.address
        return None


class ComputeServerAccess(BaseModel):
    access_type: str
    host: Optional[str] = None


class ComputeCapacityInfo(BaseModel):
    max_cores: Optional[int] = None
    max_memory: Optional[int] = None
    max_storage: Optional[int] = None
    max_cpu: Optional[float] = None
    used_memory: Optional[int] = None
    used_storage: Optional[int] = None


class ServicePlan(Entity):
    code: str
    name: Optional[str] = None
    active: bool = True
    deleted: bool = False
    provision_type_code: Optional[str] = None
    max_memory: Optional[int] = None
    max_cores: Optional[int] = None
    max_storage: Optional[int] = None
    custom_cores: bool = False
    custom_max_memory: bool = False
    sort_order: int = 0
    visibility: str = "public"
    owner_id: Optional[int] = None
    region_code: Optional[str] = None


class ResourcePermission(Entity):
    morpheus_resource_type: str = "ServicePlan"
    morpheus_resource_id: int
    account_id: Optional[int] = None
    all_accounts: bool = False


class ComputeServer(Entity):
    name: Optional[str] = None
    external_id: Optional[str] = None
    cloud_id: Optional[int] = None
    account_id: Optional[int] = None
    category: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    compute_server_type: Optional[ComputeServerType] = None
    server_type: Optional[str] = None
    os_type: Optional[str] = None
    server_os: Optional[OsType] = None
    platform: Optional[str] = None
    hostname: Optional[str] = None
    ssh_username: Optional[str] = None
    ssh_host: Optional[str] = None
    external_ip: Optional[str] = None
    internal_ip: Optional[str] = None
    api_key: Optional[str] = None
    status: Optional[str] = None
    status_date: Optional[datetime] = None
    power_state: PowerState = PowerState.UNKNOWN
    provision: bool = False
    single_tenant: bool = False
    lvm_enabled: bool = False
    managed: bool = False
    discovered: bool = False
    agent_installed: bool = False
    max_cores: Optional[int] = None
    cores_per_socket: Optional[int] = None
    max_memory: Optional[int] = None
    max_storage: Optional[int] = None
    used_memory: Optional[int] = None
    used_storage: Optional[int] = None
    used_cpu: Optional[float] = None
    capacity_info: Optional[ComputeCapacityInfo] = None
    parent_server_id: Optional[int] = None
    plan: Optional[ServicePlan] = None
    source_image_interface_name: Optional[str] = None
    accesses: List[ComputeServerAccess] = []
    volumes: List[StorageVolume] = []
    interfaces: List[ComputeServerInterface] = []


class Workload(Entity):
    name: Optional[str] = None
    server_id: Optional[int] = None
    instance_id: Optional[int] = None
    plan: Optional[ServicePlan] = None
    max_cores: Optional[int] = None
    max_memory: Optional[int] = None
    max_storage: Optional[int] = None
    cores_per_socket: Optional[int] = None


class Instance(Entity):
    name: Optional[str] = None
    plan: Optional[ServicePlan] = None
    max_cores: Optional[int] = None
    max_memory: Optional[int] = None
    max_storage: Optional[int] = None
    cores_per_socket: Optional[int] = None


class Snapshot(Entity):
    name: Optional[str] = None
    external_id: Optional[str] = None
    cloud_id: Optional[int] = None
    account_id: Optional[int] = None
    server_id: Optional[int] = None
    snapshot_created: Optional[datetime] = None


# Images

class VirtualImage(Entity):
    name: Optional[str] = None
    code: Optional[str] = None
    category: Optional[str] = None
    owner_id: Optional[int] = None
    account_id: Optional[int] = None
    status: str = "Active"
    image_type: Optional[str] = None
    bucket_id: Optional[str] = None
    unique_id: Optional[str] = None
    external_id: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    user_uploaded: bool = False
    system_image: Optional[bool] = None
    image_region: Optional[str] = None


class VirtualImageLocation(Entity):
    code: Optional[str] = None
    owner_id: Optional[int] = None
    internal_id: Optional[str] = None
    external_id: Optional[str] = None
    external_disk_id: Optional[str] = None
    image_region: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    image_name: Optional[str] = None
    virtual_image_id: Optional[int] = None

    projection_keys: ClassVar[Tuple[str, ...]] = ("image_name", "virtual_image_id")


class ServiceResponse(BaseModel):
    """Outcome handed back to the host scheduler."""
    success: bool = False
    msg: Optional[str] = None
    data: Dict[str, Any] = {}

    @classmethod
    def ok(cls, data: Optional[Dict[str, Any]] = None) -> "ServiceResponse":
        return cls(success=True, data=data or {})

    @classmethod
    def error(cls, msg: str) -> "ServiceResponse":
        return cls(success=False, msg=msg)
