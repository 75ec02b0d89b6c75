"""Sample Prism payloads and a seeded in-memory store shared by the test suites."""

import copy

from prism_sync.api.models import PrismLegacyVm, PrismNetwork, PrismSnapshot, PrismVm
from prism_sync.api.service import ListResult
from prism_sync.api.shapes import V2Shape
from prism_sync.config import (
    FALLBACK_PLAN_CODE,
    HOST_SERVER_TYPE_CODE,
    NETWORK_TYPE_MANAGED_VLAN,
    NETWORK_TYPE_VLAN,
    ONE_MEGABYTE,
    UNMANAGED_SERVER_TYPE_CODE,
)
from prism_sync.models import (
    Cloud,
    ComputeServerInterfaceType,
    ComputeServerType,
    NetworkPoolServer,
    NetworkType,
    OsType,
    ServicePlan,
    StorageVolumeType,
)
from prism_sync.store.memory import MemoryStore

CONTAINER_ENTITY = {
    "id": "000623fa-11d0-1ee5-7f35-5254004b8782::4",
    "storage_container_uuid": "2b877466-edbf-4363-8502-dfba188a4bcf",
    "name": "default-container-54726310217554",
    "cluster_uuid": "000623fa-11d0-1ee5-7f35-5254004b8782",
    "max_capacity": 692010703654,
    "replication_factor": 1,
    "usage_stats": {
        "storage.free_bytes": "688728992550",
        "storage.usage_bytes": "3281711104",
    },
}

MANAGEMENT_SHARE_ENTITY = {
    "id": "000623fa-11d0-1ee5-7f35-5254004b8782::5",
    "storage_container_uuid": "5f1b0e9a-2c7b-4a43-9d38-0b5f0e1d7c11",
    "name": "NutanixManagementShare",
    "max_capacity": 692010703654,
    "usage_stats": {"storage.free_bytes": "688728992550"},
}

HOST_ENTITY = {
    "uuid": "4c3e0d3c-2b4e-4e3a-9f47-b2f7d0e4a1aa",
    "name": "NTNX-host-1",
    "hypervisor_address": "10.0.0.21",
    "ipmi_address": "10.0.1.21",
    "state": "NORMAL",
    "memory_capacity_in_bytes": 135088422912,
    "num_cpu_cores": 8,
    "num_cpu_sockets": 2,
}

MANAGED_NETWORK_ENTITY = {
    "uuid": "a2b3c4d5-0000-4000-8000-000000000001",
    "name": "vlan-100",
    "vlan_id": 100,
    "ip_config": {
        "network_address": "192.168.100.0",
        "prefix_length": 24,
        "default_gateway": "192.168.100.1",
        "dhcp_server_address": "192.168.100.254",
        "pool": [{"range": "192.168.100.10 192.168.100.200"}],
        "dhcp_options": {
            "domain_name_servers": "8.8.8.8",
            "domain_name": "lab.local",
            "domain_search": "lab.local",
        },
    },
}

UNMANAGED_NETWORK_ENTITY = {
    "uuid": "a2b3c4d5-0000-4000-8000-000000000002",
    "name": "vlan-0",
    "vlan_id": 0,
    "ip_config": {"network_address": None, "pool": []},
}

VM_ENTITY = {
    "uuid": "9a1c2b3d-1111-4222-8333-944455556666",
    "name": "app-01",
    "power_state": "on",
    "num_vcpus": 2,
    "num_cores_per_vcpu": 1,
    "memory_mb": 4096,
    "host_uuid": HOST_ENTITY["uuid"],
    "vm_disk_info": [
        {
            "disk_address": {"vmdisk_uuid": "d1000000-0000-4000-8000-000000000001", "device_bus": "scsi", "device_index": 0},
            "is_cdrom": False,
            "size": 42949672960,
            "storage_container_uuid": CONTAINER_ENTITY["storage_container_uuid"],
        },
        {
            "disk_address": {"vmdisk_uuid": "d1000000-0000-4000-8000-000000000002", "device_bus": "scsi", "device_index": 1},
            "is_cdrom": False,
            "size": 10737418240,
            "storage_container_uuid": CONTAINER_ENTITY["storage_container_uuid"],
        },
        {
            "disk_address": {"vmdisk_uuid": "d1000000-0000-4000-8000-000000000003", "device_bus": "ide", "device_index": 0},
            "is_cdrom": True,
        },
    ],
    "vm_nics": [
        {
            "mac_address": "50:6b:8d:00:00:01",
            "network_uuid": MANAGED_NETWORK_ENTITY["uuid"],
            "ip_address": "192.168.100.15",
            "ip_addresses": ["192.168.100.15"],
            "adapter_type": "virtio",
        },
    ],
}

LEGACY_VM_ENTITY = {
    "uuid": VM_ENTITY["uuid"],
    "hostName": "app-01.lab.local",
    "memoryCapacityInBytes": 4294967296,
    "stats": {
        "guest.memory_usage_bytes": "1073741824",
        "controller_user_bytes": "5368709120",
        "hypervisor_cpu_usage_ppm": "125000",
    },
}

SNAPSHOT_ENTITY = {
    "uuid": "5e000000-0000-4000-8000-000000000001",
    "snapshot_name": "before-upgrade",
    "created_time": 1700000000000000,
    "vm_uuid": VM_ENTITY["uuid"],
}

IMAGE_ENTITY = {
    "uuid": "1a000000-0000-4000-8000-000000000001",
    "name": "ubuntu-22.04",
    "image_type": "DISK_IMAGE",
    "vm_disk_id": "1b000000-0000-4000-8000-000000000001",
    "storage_container_id": 4,
    "storage_container_uuid": CONTAINER_ENTITY["storage_container_uuid"],
}

ISO_IMAGE_ENTITY = {
    "uuid": "1a000000-0000-4000-8000-000000000002",
    "name": "virtio-drivers.iso",
    "image_type": "ISO_IMAGE",
    "vm_disk_id": "1b000000-0000-4000-8000-000000000002",
}


def make_cloud(**overrides) -> Cloud:
    values = dict(
        id=1,
        name="prism-01",
        account_id=1,
        owner_id=1,
        api_url="https://10.0.0.10:9440",
        username="admin",
        password="nutanix/4u",
        config={"importExisting": "on"},
    )
    values.update(overrides)
    return Cloud(**values)


def make_vm(entity=None, legacy=True, **overrides) -> PrismVm:
    payload = copy.deepcopy(entity or VM_ENTITY)
    payload.update(overrides)
    vm = PrismVm.model_validate(payload)
    if legacy:
        vm.legacy_vm = PrismLegacyVm.model_validate(copy.deepcopy(LEGACY_VM_ENTITY))
    return vm


def seeded_store(cloud: Cloud = None) -> MemoryStore:
    """Store holding the catalogs every reconciler looks up."""
    cloud = cloud or make_cloud()
    store = MemoryStore()
    store.clouds.seed(cloud)
    store.server_types.seed(
        ComputeServerType(code=HOST_SERVER_TYPE_CODE, name="Nutanix Hypervisor"),
        ComputeServerType(code=UNMANAGED_SERVER_TYPE_CODE, name="Nutanix Unmanaged", guest_vm=True),
    )
    store.os_types.seed(OsType(code="linux", platform="linux"), OsType(code="unknown"))
    store.volume_types.seed(
        StorageVolumeType(code="nutanix-scsi", external_id="nutanix_SCSI"),
        StorageVolumeType(code="nutanix-sata", external_id="nutanix_SATA"),
        StorageVolumeType(code="nutanix-ide", external_id="nutanix_IDE"),
    )
    store.interface_types.seed(
        ComputeServerInterfaceType(code="nutanixVirtio", external_id="virtio"),
        ComputeServerInterfaceType(code="nutanixE1000", external_id="e1000"),
    )
    store.network_types.seed(NetworkType(code=NETWORK_TYPE_VLAN), NetworkType(code=NETWORK_TYPE_MANAGED_VLAN))
    store.network_pool_servers.seed(NetworkPoolServer(name="Nutanix IPAM", ref_type="ComputeZone", ref_id=cloud.id))
    store.plans.seed(
        ServicePlan(code="nutanix-small", name="Small", provision_type_code="nutanix",
                    max_memory=4096 * ONE_MEGABYTE, max_cores=2, sort_order=1),
        ServicePlan(code="nutanix-large", name="Large", provision_type_code="nutanix",
                    max_memory=8192 * ONE_MEGABYTE, max_cores=4, sort_order=2),
        ServicePlan(code=FALLBACK_PLAN_CODE, name="Custom Nutanix", provision_type_code="nutanix",
                    custom_cores=True, custom_max_memory=True, sort_order=100),
    )
    return store


class FakePrismApi:
    """Stands in for PrismApiService; list calls return the seeded payloads."""

    def __init__(self, networks=None, containers=None, hosts=None, vms=None, snapshots=None, images=None,
                 fail=False):
        shape = V2Shape()
        self.fail = fail
        self.networks = [PrismNetwork.model_validate(entity) for entity in networks or []]
        self.containers = [shape.normalize_container(entity) for entity in containers or []]
        self.hosts = [shape.normalize_host(entity) for entity in hosts or []]
        self.vms = list(vms or [])
        self.snapshots = [PrismSnapshot.model_validate(entity) for entity in snapshots or []]
        self.images = [shape.normalize_image(entity) for entity in images or []]
        self.connection = {"success": True, "invalid_login": False, "status_code": 200}

    def _result(self, items):
        if self.fail:
            return ListResult(success=False, msg="connection refused")
        return ListResult(success=True, items=list(items))

    def test_connection(self):
        return self.connection

    def list_networks(self):
        return self._result(self.networks)

    def list_containers(self):
        return self._result(self.containers)

    def list_hosts(self):
        return self._result(self.hosts)

    def list_virtual_machines(self):
        return self._result(self.vms)

    def list_snapshots(self):
        return self._result(self.snapshots)

    def list_images(self):
        return self._result(self.images)
