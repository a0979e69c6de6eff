"""
In-process domain event bus.

Dispatches marketplace events to registered handlers:
    1. Type-specific handlers (subscribed with an event type name)
    2. Catch-all handlers (subscribed without one)

Architecture:
    AuctionCoordinator / PurchaseFractions  ──▶  InMemoryEventBus
                                                      │
                                               ┌──────┴───────┐
                                               │ Handlers:     │
                                               │  • by type    │
                                               │  • catch-all  │
                                               └───────────────┘

Delivery is best effort. A failing handler is logged and counted, and
never fails the write that produced the event.

Usage:
    bus = InMemoryEventBus()
    bus.subscribe(on_bid, "BidAccepted")
    bus.publish(BidAccepted(...))
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from fracart.domain.marketplace.events import DomainEvent
from fracart.domain.marketplace.ports import EventHandler, EventPublisher

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════
# Data structures
# ══════════════════════════════════════════════════════════════════════


@dataclass
class DeliveryResult:
    """Result of delivering one event to one handler."""

    handler: str
    success: bool
    error: str | None = None
    latency_ms: float = 0.0


@dataclass
class PublishSummary:
    """Summary of all deliveries for a single published event."""

    event_type: str
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def all_success(self) -> bool:
        return all(r.success for r in self.results)


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


# ══════════════════════════════════════════════════════════════════════
# Bus
# ══════════════════════════════════════════════════════════════════════


class InMemoryEventBus(EventPublisher):
    """Synchronous, thread-safe publish/subscribe for domain events."""

    def __init__(self) -> None:
        self._handlers: dict[Optional[str], list[EventHandler]] = {}
        self._lock = threading.Lock()
        self._stats = {
            "events_published": 0,
            "deliveries": 0,
            "errors": 0,
        }

    @property
    def stats(self) -> dict:
        with self._lock:
            return dict(self._stats)

    def _count(self, key: str) -> None:
        with self._lock:
            self._stats[key] += 1

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def subscribe(self, handler: EventHandler, event_type: Optional[str] = None) -> None:
        """Register a handler for one event type name, or all events when None."""
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
        logger.info("Event handler registered: %s (%s)", _handler_name(handler), event_type or "*")

    def unsubscribe(self, handler: EventHandler, event_type: Optional[str] = None) -> None:
        """Remove a previously registered handler."""
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.info("Event handler removed: %s", _handler_name(handler))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def publish(self, event: DomainEvent) -> PublishSummary:
        """Deliver an event to every matching handler.

        Type-specific handlers run before catch-all handlers, each in
        registration order.

        Args:
            event: The domain event to deliver.

        Returns:
            PublishSummary with per-handler results.
        """
        with self._lock:
            targets = list(self._handlers.get(event.event_type, []))
            targets.extend(self._handlers.get(None, []))
            self._stats["events_published"] += 1

        summary = PublishSummary(event_type=event.event_type)

        for handler in targets:
            summary.results.append(self._deliver(handler, event))

        logger.debug(
            "Published %s to %d/%d handlers",
            event.event_type,
            summary.delivered,
            len(summary.results),
        )
        return summary

    def _deliver(self, handler: EventHandler, event: DomainEvent) -> DeliveryResult:
        start = time.monotonic()
        name = _handler_name(handler)
        try:
            handler(event)
            self._count("deliveries")
            return DeliveryResult(
                handler=name,
                success=True,
                latency_ms=(time.monotonic() - start) * 1000,
            )
        except Exception as exc:
            self._count("errors")
            logger.error("Event handler %s failed on %s: %s", name, event.event_type, exc)
            return DeliveryResult(
                handler=name,
                success=False,
                error=str(exc),
                latency_ms=(time.monotonic() - start) * 1000,
            )
