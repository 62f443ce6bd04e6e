from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from .completion import CompletionService
from .exceptions import ExternalServiceError, HealingCancelled
from .healing_strategies import HealingContext, semantic_available, strategy_builders
from .history import HealingHistory
from .models import (
    HealedAction,
    HealingFailure,
    HealingRecord,
    HealingResult,
    LocatorCandidate,
    RecordedAction,
)
from .page_query import PageQuery, resolve_selector
from .scoring import compute_confidence
from .settings import HealingSettings

logger = logging.getLogger(__name__)


class SelfHealingResolver:
    """Repairs recorded selectors that no longer resolve on the current page.

    Strategies run in the order learned from the healing history. The
    first candidate that is unique on the page and reaches the confidence
    threshold wins; it is recorded and the action is rewritten. When every
    strategy is exhausted a ``HealingFailure`` is returned and nothing is
    written.
    """

    def __init__(
        self,
        history: HealingHistory,
        *,
        completion: CompletionService | None = None,
        settings: HealingSettings | None = None,
    ) -> None:
        self.history = history
        self.completion = completion
        self.settings = settings or HealingSettings()

    def strategy_order(self) -> list[str]:
        return self.history.ranking()

    def heal(
        self,
        action: RecordedAction,
        page: PageQuery,
        *,
        cancel_event: threading.Event | None = None,
    ) -> HealingResult:
        element = action.element
        context = HealingContext(
            original_selector=element.selector,
            query_kind=element.query_kind,
            descriptor=element.descriptor,
            page=page,
            settings=self.settings,
            completion=self.completion,
        )
        builders = strategy_builders()
        attempted: list[str] = []
        skipped: list[str] = []
        logger.debug("Healing %s selector %s", element.query_kind, element.selector)

        for strategy in self.strategy_order():
            _raise_if_cancelled(cancel_event, element.selector)
            builder = builders.get(strategy)
            if builder is None:
                continue
            if strategy == "semantic-similarity" and not semantic_available(context):
                skipped.append(strategy)
                continue

            attempted.append(strategy)
            try:
                candidates = builder(context)
            except ExternalServiceError as exc:
                logger.warning("Completion service failed while healing %s: %s", element.selector, exc)
                continue

            accepted = self._first_accepted(candidates, context)
            if accepted is None:
                logger.debug("Strategy %s rejected for %s (%d candidates)", strategy, element.selector, len(candidates))
                continue

            candidate, confidence = accepted
            _raise_if_cancelled(cancel_event, element.selector)
            return self._accept(action, page, candidate, confidence)

        logger.warning("Healing exhausted for %s; attempted %s", element.selector, ", ".join(attempted) or "nothing")
        return HealingFailure(
            original_selector=element.selector,
            descriptor=element.descriptor,
            attempted=tuple(attempted),
            skipped=tuple(skipped),
        )

    def heal_many(
        self,
        actions: Iterable[RecordedAction],
        page: PageQuery,
        *,
        max_workers: int = 4,
        cancel_event: threading.Event | None = None,
    ) -> list[HealingResult]:
        items = list(actions)
        if not items:
            return []
        workers = max(1, min(int(max_workers), len(items)))
        if workers == 1:
            return [self.heal(item, page, cancel_event=cancel_event) for item in items]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="locatorheal-heal") as executor:
            return list(executor.map(lambda item: self.heal(item, page, cancel_event=cancel_event), items))

    def _first_accepted(
        self,
        candidates: list[LocatorCandidate],
        context: HealingContext,
    ) -> tuple[LocatorCandidate, float] | None:
        threshold = self.settings.confidence_threshold
        for candidate in candidates:
            outcome = resolve_selector(context.page, candidate.selector, candidate.query_kind, cache=context.cache)
            if not outcome.valid or not outcome.is_unique:
                continue
            matches = context.safe_query(candidate.selector, candidate.query_kind)
            if not matches:
                continue
            confidence = compute_confidence(candidate, matches[0].to_descriptor())
            if confidence >= threshold:
                return candidate, confidence
            logger.debug("Candidate %s below threshold (%.2f < %.2f)", candidate.selector, confidence, threshold)
        return None

    def _accept(
        self,
        action: RecordedAction,
        page: PageQuery,
        candidate: LocatorCandidate,
        confidence: float,
    ) -> HealedAction:
        original = action.element.selector
        page_url = action.page_url or str(getattr(page, "url", "") or "")
        record = HealingRecord.create(original, candidate.selector, candidate.strategy, confidence, page_url)
        self.history.append(record)

        healed = action.with_healed_selector(candidate.selector, candidate.query_kind, candidate.strategy, confidence)
        logger.info("Healed %s -> %s via %s (confidence %.2f)", original, candidate.selector, candidate.strategy, confidence)
        return HealedAction(
            action=healed,
            original_selector=original,
            strategy=candidate.strategy,
            confidence=confidence,
            record=record,
        )


def _raise_if_cancelled(cancel_event: threading.Event | None, selector: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise HealingCancelled(selector)
