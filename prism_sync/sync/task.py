"""
Three-way diff between stored records and the remote inventory.

SyncTask pairs each remote record with at most one existing record using
an ordered list of match functions (first match function that pairs with
any unclaimed existing record wins), then hands whole Add / Update / Delete
batches to caller supplied callbacks so they can issue bulk writes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")  # existing record or identity projection
R = TypeVar("R")  # remote record

MatchFunction = Callable[[Any, Any], bool]


@dataclass
class UpdateItem(Generic[E, R]):
    """A matched pair: local record and the remote record it mirrors."""
    existing_item: E
    master_item: R


@dataclass
class DiffResult(Generic[E, R]):
    to_add: List[R] = field(default_factory=list)
    to_update: List[UpdateItem] = field(default_factory=list)
    to_delete: List[E] = field(default_factory=list)


def reconcile(existing: Iterable[E], remote: Iterable[R], matchers: List[MatchFunction]) -> DiffResult:
    """
    Partition remote and existing records into add, update and delete.

    Args:
        existing: Stored records or their identity projections
        remote: Records reported by the remote system
        matchers: Ordered predicates over (existing, remote)

    Returns:
        DiffResult where every input appears exactly once: remote records in
        to_add or as the master side of an update, existing records in
        to_delete or as the existing side of an update.
    """
    existing = list(existing)
    claimed = set()
    result = DiffResult()

    for remote_item in remote:
        match_index = None
        for matcher in matchers:
            for index, existing_item in enumerate(existing):
                if index not in claimed and matcher(existing_item, remote_item):
                    match_index = index
                    break
            if match_index is not None:
                break

        if match_index is None:
            result.to_add.append(remote_item)
        else:
            claimed.add(match_index)
            result.to_update.append(UpdateItem(existing[match_index], remote_item))

    result.to_delete = [item for index, item in enumerate(existing) if index not in claimed]
    return result


class SyncTask:
    """
    Fluent wrapper around reconcile().

    Example:
        SyncTask(projections, networks) \\
            .add_match_function(lambda existing, remote: existing.external_id == remote.uuid) \\
            .with_load_object_details_from_finder(lambda items: repo.list_by_id([i.existing_item.id for i in items])) \\
            .on_add(add_networks).on_update(update_networks).on_delete(repo.bulk_remove) \\
            .start()
    """

    def __init__(self, existing: Iterable[Any], remote: Iterable[Any]):
        self.existing = list(existing or [])
        self.remote = list(remote or [])
        self.matchers: List[MatchFunction] = []
        self._finder: Optional[Callable[[List[UpdateItem]], List[Any]]] = None
        self._add_callback: Optional[Callable[[List[Any]], Any]] = None
        self._update_callback: Optional[Callable[[List[UpdateItem]], Any]] = None
        self._delete_callback: Optional[Callable[[List[Any]], Any]] = None

    def add_match_function(self, matcher: MatchFunction) -> "SyncTask":
        self.matchers.append(matcher)
        return self

    def with_load_object_details_from_finder(self, finder: Callable[[List[UpdateItem]], List[Any]]) -> "SyncTask":
        """
        Hydrate matched projections in one batch.

        The finder receives the thin update items and returns full records;
        they are paired back to their remote record by ``id``.
        """
        self._finder = finder
        return self

    def on_add(self, callback: Callable[[List[Any]], Any]) -> "SyncTask":
        self._add_callback = callback
        return self

    def on_update(self, callback: Callable[[List[UpdateItem]], Any]) -> "SyncTask":
        self._update_callback = callback
        return self

    def on_delete(self, callback: Callable[[List[Any]], Any]) -> "SyncTask":
        self._delete_callback = callback
        return self

    def _hydrate(self, items: List[UpdateItem]) -> List[UpdateItem]:
        if not self._finder or not items:
            return items
        loaded = {record.id: record for record in self._finder(items) or []}
        hydrated = []
        for item in items:
            record = loaded.get(item.existing_item.id)
            if record is None:
                # removed between projection and hydration; next pass re-diffs it
                logger.debug(f"record {item.existing_item.id} vanished before hydration")
                continue
            hydrated.append(UpdateItem(record, item.master_item))
        return hydrated

    def start(self) -> DiffResult:
        """Run the diff and deliver non-empty batches to the callbacks."""
        result = reconcile(self.existing, self.remote, self.matchers)
        logger.debug(
            f"diff: {len(result.to_add)} add, {len(result.to_update)} update, {len(result.to_delete)} delete"
        )

        if result.to_add and self._add_callback:
            self._add_callback(result.to_add)

        if result.to_update and self._update_callback:
            hydrated = self._hydrate(result.to_update)
            if hydrated:
                self._update_callback(hydrated)

        if result.to_delete and self._delete_callback:
            self._delete_callback(result.to_delete)

        return result
