from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Iterable, Sequence

from .healing_strategies import HEALING_STRATEGIES
from .models import HealingRecord, HealingStats
from .stores import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "healingHistory"
RANKING_KEY = "strategyRanking"

DEFAULT_HISTORY_LIMIT = 100
MIN_RECORDS_FOR_RANKING = 5


def rank_strategies(
    records: Sequence[HealingRecord],
    vocabulary: Sequence[str] = HEALING_STRATEGIES,
    *,
    min_records: int = MIN_RECORDS_FOR_RANKING,
) -> list[str]:
    """Order ``vocabulary`` by mean healing confidence in ``records``.

    Below ``min_records`` the default order is returned. Strategies with
    no history keep their default relative order after the ranked ones.
    Names outside the vocabulary are ignored, so the result is always a
    permutation of ``vocabulary``. This is a moving-average reordering,
    not an optimality guarantee.
    """
    default = list(dict.fromkeys(vocabulary))
    if len(records) < min_records:
        return default

    position = {name: index for index, name in enumerate(default)}
    totals: dict[str, float] = {}
    counts: dict[str, int] = {}
    for record in records:
        if record.strategy not in position:
            continue
        totals[record.strategy] = totals.get(record.strategy, 0.0) + record.confidence
        counts[record.strategy] = counts.get(record.strategy, 0) + 1

    ranked = sorted(totals, key=lambda name: (-(totals[name] / counts[name]), position[name]))
    return ranked + [name for name in default if name not in totals]


class HealingHistory:
    """Ring buffer of healing records over a key-value store.

    Appends hold a single lock for the whole load, evict, save cycle.
    The stored ranking is a cache and is recomputed from the records.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
        min_records_for_ranking: int = MIN_RECORDS_FOR_RANKING,
        vocabulary: Sequence[str] = HEALING_STRATEGIES,
    ) -> None:
        self.store = store
        self.limit = max(1, int(limit))
        self.min_records_for_ranking = max(0, int(min_records_for_ranking))
        self.vocabulary = tuple(dict.fromkeys(vocabulary))
        self._lock = threading.Lock()

    def records(self) -> list[HealingRecord]:
        with self._lock:
            return self._load()

    def append(self, record: HealingRecord) -> list[str]:
        with self._lock:
            buffer = deque(self._load(), maxlen=self.limit)
            buffer.append(record)
            records = list(buffer)
            self.store.set(HISTORY_KEY, [item.to_dict() for item in records])
            ranking = self._rank(records)
            self.store.set(RANKING_KEY, ranking)
            return ranking

    def ranking(self) -> list[str]:
        return self._rank(self.records())

    def cached_ranking(self) -> list[str] | None:
        raw = self.store.get(RANKING_KEY)
        if not isinstance(raw, list):
            return None
        names = [str(item) for item in raw]
        if sorted(names) != sorted(self.vocabulary):
            return None
        return names

    def stats(self) -> HealingStats:
        records = self.records()
        per_strategy: dict[str, int] = {}
        for record in records:
            per_strategy[record.strategy] = per_strategy.get(record.strategy, 0) + 1
        average = sum(record.confidence for record in records) / len(records) if records else 0.0
        return HealingStats(total=len(records), per_strategy=per_strategy, average_confidence=round(average, 4))

    def clear(self) -> None:
        with self._lock:
            self.store.set(HISTORY_KEY, [])
            self.store.set(RANKING_KEY, list(self.vocabulary))

    def _rank(self, records: Sequence[HealingRecord]) -> list[str]:
        return rank_strategies(records, self.vocabulary, min_records=self.min_records_for_ranking)

    def _load(self) -> list[HealingRecord]:
        raw = self.store.get(HISTORY_KEY)
        if not isinstance(raw, list):
            return []
        records = list(_parse_records(raw))
        return records[-self.limit :]


def _parse_records(raw: Iterable[Any]) -> Iterable[HealingRecord]:
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            yield HealingRecord.from_dict(item)
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed healing record: %r", item)
