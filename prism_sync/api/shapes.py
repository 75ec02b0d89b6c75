"""
API version strategies.

Prism Element serves the same inventory from the v1 PrismGateway API and
the v2.0 API with different field names. A shape is picked once per cloud
and owns both the paths and the normalization into the typed models, so
reconcilers only ever see one record layout.
"""

from typing import Any, Dict

from prism_sync.api.models import PrismContainer, PrismHost, PrismImage
from prism_sync.config import STANDARD_API, V2_API
from prism_sync.models import Cloud
from prism_sync.utils import to_int


def _normalize_image_type(image_type: Any) -> str:
    if image_type is None or image_type == "DISK_IMAGE" or str(image_type).lower() == "disk":
        return "qcow2"
    return "iso"


def _to_str(value: Any):
    return None if value is None else str(value)


class V2Shape:
    """Prism Element v2.0 REST layout."""

    version = "v2"
    containers_path = V2_API + "storage_containers"
    hosts_path = V2_API + "hosts"
    images_path = V2_API + "images"

    def normalize_container(self, entity: Dict[str, Any]) -> PrismContainer:
        usage_stats = entity.get("usage_stats") or {}
        return PrismContainer(
            id=_to_str(entity.get("id")),
            uuid=entity.get("storage_container_uuid"),
            name=entity.get("name"),
            max_storage=to_int(entity.get("max_capacity")),
            free_storage=to_int(usage_stats.get("storage.free_bytes")),
            cluster_uuid=entity.get("cluster_uuid"),
            replication_factor=entity.get("replication_factor"),
        )

    def normalize_host(self, entity: Dict[str, Any]) -> PrismHost:
        return PrismHost.model_validate(entity)

    def normalize_image(self, entity: Dict[str, Any]) -> PrismImage:
        return PrismImage(
            uuid=entity.get("uuid"),
            name=entity.get("name"),
            image_status=entity.get("image_state"),
            image_type=_normalize_image_type(entity.get("image_type")),
            vm_disk_id=entity.get("vm_disk_id"),
            container_id=_to_str(entity.get("storage_container_id")),
            container_uuid=entity.get("storage_container_uuid"),
            deleted=entity.get("deleted"),
            timestamp=entity.get("logical_timestamp"),
        )


class V1Shape(V2Shape):
    """PrismGateway v1 layout for containers and hosts; images only exist on v2."""

    version = "v1"
    containers_path = STANDARD_API + "containers"
    hosts_path = STANDARD_API + "hosts"

    def normalize_container(self, entity: Dict[str, Any]) -> PrismContainer:
        usage_stats = entity.get("usageStats") or {}
        return PrismContainer(
            id=_to_str(entity.get("id")),
            uuid=entity.get("containerUuid"),
            name=entity.get("name"),
            max_storage=to_int(entity.get("maxCapacity")),
            free_storage=to_int(usage_stats.get("storage.free_bytes")),
            cluster_uuid=entity.get("clusterUuid"),
            replication_factor=entity.get("replicationFactor"),
        )

    def normalize_host(self, entity: Dict[str, Any]) -> PrismHost:
        return PrismHost(
            uuid=entity.get("uuid"),
            name=entity.get("name"),
            hypervisor_address=entity.get("hypervisorAddress"),
            ipmi_address=entity.get("ipmiAddress"),
            state=entity.get("state"),
            memory_capacity_in_bytes=entity.get("memoryCapacityInBytes"),
            num_cpu_cores=entity.get("numCpuCores"),
            num_cpu_sockets=entity.get("numCpuSockets"),
        )


SHAPES = {"v1": V1Shape, "v2": V2Shape}


def select_api_shape(cloud: Cloud):
    """Pick the shape from the cloud's ``apiVersion`` config; v2 unless told otherwise."""
    version = str(cloud.get_config_property("apiVersion") or "v2").lower()
    return SHAPES.get(version, V2Shape)()
