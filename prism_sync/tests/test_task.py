import unittest
from types import SimpleNamespace

from prism_sync.sync.changes import apply_changes, diff_fields
from prism_sync.sync.task import SyncTask, reconcile


def local(record_id, external_id=None, name=None):
    return SimpleNamespace(id=record_id, external_id=external_id, name=name)


def remote(uuid, name=None):
    return SimpleNamespace(uuid=uuid, name=name)


class ReconcileTests(unittest.TestCase):
    def test_every_record_lands_in_exactly_one_bucket(self):
        existing = [local(1, "a"), local(2, "b"), local(3, "c")]
        remotes = [remote("b"), remote("c"), remote("d"), remote("e")]

        result = reconcile(existing, remotes, [lambda e, r: e.external_id == r.uuid])

        self.assertEqual([r.uuid for r in result.to_add], ["d", "e"])
        self.assertEqual([(u.existing_item.id, u.master_item.uuid) for u in result.to_update], [(2, "b"), (3, "c")])
        self.assertEqual([e.id for e in result.to_delete], [1])

        seen_remote = [r.uuid for r in result.to_add] + [u.master_item.uuid for u in result.to_update]
        seen_existing = [e.id for e in result.to_delete] + [u.existing_item.id for u in result.to_update]
        self.assertCountEqual(seen_remote, ["b", "c", "d", "e"])
        self.assertCountEqual(seen_existing, [1, 2, 3])

    def test_existing_record_is_claimed_once(self):
        """Two remotes sharing a name cannot both pair with the same local record."""
        existing = [local(1, name="web")]
        remotes = [remote("x", "web"), remote("y", "web")]

        result = reconcile(existing, remotes, [lambda e, r: e.name == r.name])

        self.assertEqual(len(result.to_update), 1)
        self.assertEqual(result.to_update[0].master_item.uuid, "x")
        self.assertEqual([r.uuid for r in result.to_add], ["y"])
        self.assertEqual(result.to_delete, [])

    def test_earlier_matcher_wins(self):
        existing = [local(1, "by-id", "other"), local(2, "something", "web")]
        remotes = [remote("by-id", "web")]

        result = reconcile(existing, remotes, [
            lambda e, r: e.external_id == r.uuid,
            lambda e, r: e.name == r.name,
        ])

        self.assertEqual(result.to_update[0].existing_item.id, 1)
        self.assertEqual([e.id for e in result.to_delete], [2])

    def test_fallback_matcher_used_when_first_misses(self):
        existing = [local(1, None, "web")]
        result = reconcile(existing, [remote("new-id", "web")], [
            lambda e, r: e.external_id == r.uuid,
            lambda e, r: e.name == r.name,
        ])
        self.assertEqual(result.to_update[0].existing_item.id, 1)


class SyncTaskTests(unittest.TestCase):
    def test_callbacks_receive_batches_in_order(self):
        calls = []
        SyncTask([local(1, "a"), local(2, "b")], [remote("b"), remote("c")]) \
            .add_match_function(lambda e, r: e.external_id == r.uuid) \
            .on_add(lambda items: calls.append(("add", [i.uuid for i in items]))) \
            .on_update(lambda items: calls.append(("update", [i.existing_item.id for i in items]))) \
            .on_delete(lambda items: calls.append(("delete", [i.id for i in items]))) \
            .start()

        self.assertEqual(calls, [("add", ["c"]), ("update", [2]), ("delete", [1])])

    def test_empty_buckets_skip_callbacks(self):
        calls = []
        SyncTask([local(1, "a")], [remote("a")]) \
            .add_match_function(lambda e, r: e.external_id == r.uuid) \
            .on_add(lambda items: calls.append("add")) \
            .on_update(lambda items: calls.append("update")) \
            .on_delete(lambda items: calls.append("delete")) \
            .start()

        self.assertEqual(calls, ["update"])

    def test_finder_hydrates_and_drops_vanished_records(self):
        full_records = {2: SimpleNamespace(id=2, external_id="b", detail="full")}
        received = []

        SyncTask([local(1, "a"), local(2, "b")], [remote("a"), remote("b")]) \
            .add_match_function(lambda e, r: e.external_id == r.uuid) \
            .with_load_object_details_from_finder(
                lambda items: [full_records[i.existing_item.id] for i in items if i.existing_item.id in full_records]) \
            .on_update(received.extend) \
            .start()

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].existing_item.detail, "full")
        self.assertEqual(received[0].master_item.uuid, "b")


class ChangesTests(unittest.TestCase):
    def test_only_differing_fields_are_written(self):
        target = SimpleNamespace(name="old", size=10)

        changes = apply_changes(target, {"name": "new", "size": 10})

        self.assertEqual(changes, {"name": ("old", "new")})
        self.assertEqual(target.name, "new")

    def test_no_changes_for_identical_state(self):
        self.assertEqual(diff_fields(SimpleNamespace(a=1, b=None), {"a": 1, "b": None}), {})


if __name__ == "__main__":
    unittest.main()
