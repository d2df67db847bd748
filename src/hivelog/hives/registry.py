"""HiveRegistry: read-only snapshot of known hives for one reconciliation.

The snapshot is taken once per call and never re-read mid-call, so hives
added or removed by other callers become visible on the next call only.
Order is registration order and is significant: the positional rule of
the resolver ("bikupa 2") indexes into it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator

from hivelog.models import Hive

if TYPE_CHECKING:
    from hivelog.store import InspectionStore

logger = logging.getLogger(__name__)


class HiveRegistry:
    """Ordered, id-indexed view over a list of hives.

    Usage:
        registry = HiveRegistry.from_store(store)
        hive = registry.get(hive_id)
        first = registry.hives[0]
    """

    def __init__(self, hives: Iterable[Hive]) -> None:
        self._hives: tuple[Hive, ...] = tuple(hives)
        self._by_id: dict[str, Hive] = {hive.id: hive for hive in self._hives}

    @classmethod
    def from_store(cls, store: InspectionStore) -> HiveRegistry:
        """Snapshot the store's active hives."""
        registry = cls(store.load())
        logger.debug("HiveRegistry loaded: %d hives", len(registry))
        return registry

    @property
    def hives(self) -> tuple[Hive, ...]:
        return self._hives

    def get(self, hive_id: str) -> Hive | None:
        """Look up a hive by id."""
        return self._by_id.get(hive_id)

    def __len__(self) -> int:
        return len(self._hives)

    def __iter__(self) -> Iterator[Hive]:
        return iter(self._hives)

    def __contains__(self, hive_id: object) -> bool:
        return hive_id in self._by_id
