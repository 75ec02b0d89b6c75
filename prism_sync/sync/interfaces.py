"""VM NIC sync: Prism NICs become compute server interfaces"""

from typing import Dict, List, Optional

from prism_sync.api.models import PrismVmNic
from prism_sync.models import (
    AddressType,
    ComputeServer,
    ComputeServerInterface,
    ComputeServerInterfaceType,
    NetAddress,
    Network,
)
from prism_sync.sync.base import ServerChildSync
from prism_sync.sync.task import SyncTask, UpdateItem

DEFAULT_ADAPTER_TYPE = "virtio"


def generate_nic_name(server: ComputeServer, index: int) -> str:
    """
    Interface name for a NIC position.

    Position 0 uses the source image's interface name when it has one;
    Windows guests get "Ethernet" / "Ethernet N", everything else ethN.
    """
    if index == 0 and server.source_image_interface_name:
        return server.source_image_interface_name
    if server.platform == "windows":
        return "Ethernet" if index == 0 else f"Ethernet {index + 1}"
    return f"eth{index}"


def find_interface_type(net_types: List[ComputeServerInterfaceType], adapter_type: Optional[str]) -> Optional[ComputeServerInterfaceType]:
    """First Nutanix interface type whose external id is exactly the adapter type."""
    adapter = (adapter_type or DEFAULT_ADAPTER_TYPE).lower()
    for net_type in net_types:
        if (net_type.code or "").startswith("nutanix") and (net_type.external_id or "").lower() == adapter:
            return net_type
    return None


class InterfacesSync(ServerChildSync):
    """Reconciles one server's interfaces against its Prism NICs"""

    def execute(self, server: ComputeServer, nic_list: List[PrismVmNic], networks: List[Network],
                net_types: List[ComputeServerInterfaceType]):
        """
        Args:
            server: Stored server whose interfaces are reconciled
            nic_list: Prism NICs in VM order
            networks: Candidate networks, matched by external id
            net_types: Interface type catalog
        """
        try:
            nic_list = list(nic_list or [])
            positions = {id(nic): index for index, nic in enumerate(nic_list)}
            networks_by_uuid = {network.external_id: network for network in networks or []}

            SyncTask(server.interfaces, nic_list) \
                .add_match_function(
                    lambda iface, nic: bool(nic.mac_address) and iface.external_id == nic.mac_address) \
                .add_match_function(
                    lambda iface, nic: bool(nic.primary_ip) and iface.ip_address == nic.primary_ip) \
                .on_add(lambda items: self.add_interfaces(server, items, positions, networks_by_uuid, net_types)) \
                .on_update(lambda items: self.update_interfaces(items, networks_by_uuid)) \
                .on_delete(lambda items: self.remove_interfaces(server, items)) \
                .start()
        except Exception as e:
            self.log(f"error syncing interfaces for {server.name}: {e}", "ERROR", exc_info=True)

    def add_interfaces(self, server: ComputeServer, add_items: List[PrismVmNic], positions: Dict[int, int],
                       networks_by_uuid: Dict[str, Network], net_types: List[ComputeServerInterfaceType]):
        interfaces = []
        for nic in add_items:
            position = positions.get(id(nic), 0)
            network = networks_by_uuid.get(nic.network_uuid)
            interface = ComputeServerInterface(
                name=generate_nic_name(server, position),
                external_id=nic.mac_address,
                mac_address=nic.mac_address,
                network_id=network.id if network else None,
                type=find_interface_type(net_types, nic.adapter_type),
                display_order=position,
            )
            if nic.primary_ip:
                interface.addresses = [NetAddress(type=AddressType.IPV4, address=nic.primary_ip)]
            interfaces.append(interface)

        if interfaces:
            self.store.interfaces.create(interfaces, server)

    def update_interfaces(self, update_items: List[UpdateItem], networks_by_uuid: Dict[str, Network]):
        interfaces = []
        for item in update_items:
            interface: ComputeServerInterface = item.existing_item
            nic: PrismVmNic = item.master_item
            save = False

            network = networks_by_uuid.get(nic.network_uuid)
            if network and interface.network_id != network.id:
                interface.network_id = network.id
                save = True

            if nic.mac_address != interface.mac_address:
                interface.mac_address = nic.mac_address
                save = True

            # addresses accumulate; a NIC may hold several over its lifetime
            ip_address = nic.primary_ip
            if ip_address and not any(
                address.type == AddressType.IPV4 and address.address == ip_address for address in interface.addresses
            ):
                interface.addresses.append(NetAddress(type=AddressType.IPV4, address=ip_address))
                save = True

            if interface.external_id != nic.mac_address:
                interface.external_id = nic.mac_address
                save = True

            if save:
                interfaces.append(interface)

        if interfaces:
            self.log_failures(self.store.interfaces.bulk_save(interfaces), "interface save")

    def remove_interfaces(self, server: ComputeServer, remove_items: List[ComputeServerInterface]):
        self.log(f"removing {len(remove_items)} interface(s) from {server.name}", "DEBUG")
        self.store.interfaces.remove(remove_items, server)
