# projections/base.py
"""
Base classes for projections.

A projection folds the event stream into a state:
- Declares which event types it consumes
- Starts from an initial state and applies events in stream order
- Can compare that state against the write models (verify) and,
  when they diverge, write it back (rebuild)

Projections never run implicitly; commands keep the write models current
and projections are the audit and repair path.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional
import logging

from events.models import BusinessEvent


logger = logging.getLogger(__name__)


class BaseProjection(ABC):
    """
    Base class for all projections.

    Subclasses must implement:
    - name: Unique identifier for this projection
    - consumes: List of event types this projection handles
    - initial_state(): Empty state before the first event
    - handle(state, event): Fold a single event into the state
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this projection."""
        pass

    @property
    @abstractmethod
    def consumes(self) -> List[str]:
        """List of event types this projection consumes."""
        pass

    @abstractmethod
    def initial_state(self) -> Any:
        pass

    @abstractmethod
    def handle(self, state: Any, event: BusinessEvent) -> None:
        """
        Fold a single event into state.

        Args:
            state: The mutable state built so far
            event: The event to apply
        """
        pass

    def events(self) -> Iterable[BusinessEvent]:
        return (
            BusinessEvent.objects.filter(event_type__in=self.consumes)
            .order_by("stream_sequence")
            .iterator()
        )

    def replay(self) -> tuple[Any, int]:
        """
        Replay every consumed event from the beginning.

        Returns:
            (state, events_processed)
        """
        state = self.initial_state()
        processed = 0
        for event in self.events():
            if not event.verify_payload_integrity():
                logger.error(
                    "Event payload hash mismatch",
                    extra={"event_id": str(event.id), "event_type": event.event_type},
                )
                raise ValueError(f"Event {event.id} failed payload integrity check.")
            self.handle(state, event)
            processed += 1

        logger.info(
            f"Projection {self.name} replayed {processed} events",
            extra={"projection": self.name, "events_processed": processed},
        )
        return state, processed


class ProjectionRegistry:
    """
    Registry of all projections.

    Usage:
        projection_registry.register(BalanceProjection())

        for projection in projection_registry.all():
            projection.replay()
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._projections = {}
        return cls._instance

    def register(self, projection: BaseProjection) -> None:
        """Register a projection."""
        self._projections[projection.name] = projection

    def get(self, name: str) -> Optional[BaseProjection]:
        """Get a projection by name."""
        return self._projections.get(name)

    def all(self) -> List[BaseProjection]:
        """Get all registered projections."""
        return list(self._projections.values())

    def names(self) -> List[str]:
        """Get all projection names."""
        return list(self._projections.keys())


# Global registry instance
projection_registry = ProjectionRegistry()
