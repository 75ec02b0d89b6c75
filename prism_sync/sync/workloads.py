"""
Resize propagation

When a guest VM's sizing or plan changes, the workloads running on it are
brought in line and their instances follow, but only when every workload of
an instance already agrees with the new sizing. An instance spread over
several servers is never left half resized.
"""

from typing import List, Optional

from prism_sync.models import ComputeServer, Instance, ServicePlan, Workload
from prism_sync.sync.base import BaseSync
from prism_sync.sync.changes import apply_changes

TERRAFORM_PLAN_CODE = "terraform.default"


def sizing_of(server: ComputeServer) -> dict:
    return {
        "max_cores": server.max_cores,
        "max_memory": server.max_memory,
        "cores_per_socket": server.cores_per_socket,
        "max_storage": server.max_storage,
    }


def workload_consistent(workload: Workload, server: ComputeServer) -> bool:
    """True when the workload already runs at the server's plan and sizing, or lives on the server."""
    if workload.server_id == server.id:
        return True
    plan_id = server.plan.id if server.plan else None
    workload_plan_id = workload.plan.id if workload.plan else None
    return (
        workload_plan_id == plan_id
        and workload.max_memory == server.max_memory
        and workload.max_cores == server.max_cores
        and workload.cores_per_socket == server.cores_per_socket
    )


class WorkloadResizeSync(BaseSync):
    """Cascades a server's sizing onto its workloads and instances"""

    def __init__(self, cloud, store):
        super().__init__(cloud, None, store)

    def execute(self, server: ComputeServer, plan: Optional[ServicePlan]):
        """
        Args:
            server: Server whose sizing has just been refreshed
            plan: Plan resolved for the new sizing
        """
        self.log(f"propagating sizing of {server.name} to workloads", "DEBUG")
        try:
            instance_ids = self.update_workloads(server, plan)
            if instance_ids:
                self.update_instances(server, plan, instance_ids)
        except Exception as e:
            self.log(f"error propagating resize for {server.name}: {e}", "ERROR", exc_info=True)

    def update_workloads(self, server: ComputeServer, plan: Optional[ServicePlan]) -> List[int]:
        instance_ids = []
        for workload in self.store.workloads.list(server_id=server.id):
            update = False
            if plan and (workload.plan is None or workload.plan.id != plan.id):
                workload.plan = plan
                update = True
            if apply_changes(workload, sizing_of(server)):
                update = True

            if update:
                self.store.workloads.save(workload)
                if workload.instance_id and workload.instance_id not in instance_ids:
                    instance_ids.append(workload.instance_id)
        return instance_ids

    def update_instances(self, server: ComputeServer, plan: Optional[ServicePlan], instance_ids: List[int]):
        instances_to_save = []
        for instance in self.store.instances.list_by_id(instance_ids):
            if not self.should_resize_instance(instance, server, plan):
                continue

            changed = False
            if plan and (instance.plan is None or instance.plan.id != plan.id):
                instance.plan = plan
                changed = True
            if apply_changes(instance, sizing_of(server)):
                changed = True
            if changed:
                self.log(f"resizing instance {instance.name} to plan {plan.name if plan else None}", "DEBUG")
                instances_to_save.append(instance)

        if instances_to_save:
            self.log_failures(self.store.instances.bulk_save(instances_to_save), "instance save")

    def should_resize_instance(self, instance: Instance, server: ComputeServer, plan: Optional[ServicePlan]) -> bool:
        if not plan and not (instance.plan and instance.plan.code == TERRAFORM_PLAN_CODE):
            return False
        workloads = self.store.workloads.list(instance_id=instance.id)
        if all(workload_consistent(workload, server) for workload in workloads):
            return True
        self.log(f"instance {instance.name} has workloads at another sizing; leaving it unchanged", "DEBUG")
        return False
