import unittest

from prism_sync.models import ComputeServer, Instance, ServicePlan, Workload
from prism_sync.store.memory import MemoryStore
from prism_sync.sync.workloads import WorkloadResizeSync
from prism_sync.tests.fixtures import make_cloud

GB = 1024 ** 3


class WorkloadResizeTests(unittest.TestCase):
    def setUp(self):
        self.cloud = make_cloud()
        self.store = MemoryStore()
        self.small = self.store.plans.create(ServicePlan(code="small", max_cores=2, max_memory=4 * GB))
        self.large = self.store.plans.create(ServicePlan(code="large", max_cores=4, max_memory=8 * GB))
        self.resized = self.store.servers.create(ComputeServer(
            name="node-a", max_cores=4, max_memory=8 * GB, cores_per_socket=1, max_storage=100, plan=self.large,
        ))
        self.other = self.store.servers.create(ComputeServer(
            name="node-b", max_cores=2, max_memory=4 * GB, cores_per_socket=1, max_storage=100, plan=self.small,
        ))

    def add_workload(self, server, instance, plan, cores, memory):
        return self.store.workloads.create(Workload(
            server_id=server.id, instance_id=instance.id, plan=plan,
            max_cores=cores, max_memory=memory, cores_per_socket=1, max_storage=100,
        ))

    def test_instance_split_across_servers_is_not_resized(self):
        instance = self.store.instances.create(Instance(name="db", plan=self.small, max_cores=2, max_memory=4 * GB))
        self.add_workload(self.resized, instance, self.small, 2, 4 * GB)
        self.add_workload(self.other, instance, self.small, 2, 4 * GB)

        WorkloadResizeSync(self.cloud, self.store).execute(self.resized, self.large)

        on_resized = self.store.workloads.list(server_id=self.resized.id)[0]
        self.assertEqual(on_resized.max_cores, 4)
        self.assertEqual(on_resized.plan.code, "large")

        instance = self.store.instances.get(instance.id)
        self.assertEqual(instance.plan.code, "small")
        self.assertEqual(instance.max_cores, 2)
        self.assertEqual(instance.max_memory, 4 * GB)
        self.assertEqual(self.store.instances.writes, [("create", 1)])

    def test_instance_follows_when_every_workload_agrees(self):
        instance = self.store.instances.create(Instance(name="web", plan=self.small, max_cores=2, max_memory=4 * GB))
        self.add_workload(self.resized, instance, self.small, 2, 4 * GB)
        self.add_workload(self.other, instance, self.large, 4, 8 * GB)

        WorkloadResizeSync(self.cloud, self.store).execute(self.resized, self.large)

        instance = self.store.instances.get(instance.id)
        self.assertEqual(instance.plan.code, "large")
        self.assertEqual(instance.max_cores, 4)
        self.assertEqual(instance.max_memory, 8 * GB)
        self.assertEqual(instance.max_storage, 100)

    def test_consistent_workloads_are_not_rewritten(self):
        instance = self.store.instances.create(Instance(name="app"))
        self.add_workload(self.resized, instance, self.large, 4, 8 * GB)
        self.store.reset_write_log()

        WorkloadResizeSync(self.cloud, self.store).execute(self.resized, self.large)

        self.assertEqual(self.store.write_count(), 0)

    def test_no_plan_leaves_instance_plan_alone(self):
        instance = self.store.instances.create(Instance(name="app", plan=self.small, max_cores=2))
        self.add_workload(self.resized, instance, self.small, 2, 4 * GB)

        WorkloadResizeSync(self.cloud, self.store).execute(self.resized, None)

        self.assertEqual(self.store.workloads.list(server_id=self.resized.id)[0].max_cores, 4)
        self.assertEqual(self.store.instances.get(instance.id).max_cores, 2)


if __name__ == "__main__":
    unittest.main()
