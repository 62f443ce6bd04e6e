from __future__ import annotations


class LocatorHealError(Exception):
    """Base exception for locatorheal."""


class SelectorSyntaxError(LocatorHealError):
    """Raised by a page query when a selector is not valid in its query kind."""

    def __init__(self, selector: str, query_kind: str, detail: str = "") -> None:
        message = f"Invalid {query_kind} selector: {selector!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.selector = selector
        self.query_kind = query_kind
        self.detail = detail


class ExternalServiceError(LocatorHealError):
    """Raised when the completion service errors or times out."""


class HealingCancelled(LocatorHealError):
    """Raised when a healing call is cancelled before it finished."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"Healing cancelled for selector: {selector!r}")
        self.selector = selector


class StoreError(LocatorHealError):
    """Raised when the history store cannot be read or written."""
