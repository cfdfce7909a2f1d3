"""
In-process event bus

Synchronous publish/subscribe for events that were successfully appended.
Subscribers (the audit sink, for instance) are side channels: a failing
subscriber is logged and never undoes or fails the write that produced
the event.
"""

from collections import defaultdict
from typing import Callable

from clinic_teams.kernel.events import Event
from clinic_teams.kernel.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Event], None]

ALL_EVENTS = "*"


class EventBus:
    """
    Simple synchronous in-process bus

    Handlers registered for ALL_EVENTS receive every event after the
    type-specific handlers.
    """

    def __init__(self) -> None:
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)
        logger.debug("EventBus initialized")

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Register an event handler (many handlers per event type are allowed)

        Args:
            event_type: Event type to handle, or ALL_EVENTS
            handler: Callable invoked with each matching event
        """
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def publish_event(self, event: Event) -> None:
        """
        Deliver an event to its handlers in registration order

        Handler exceptions are caught and logged so one broken subscriber
        cannot starve the others.
        """
        handlers = [
            *self._event_handlers.get(event.event_type, []),
            *self._event_handlers.get(ALL_EVENTS, []),
        ]
        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    error=str(e),
                    exc_info=True,
                )

    def publish_events(self, events: list[Event]) -> None:
        """Publish several events in order"""
        for event in events:
            self.publish_event(event)

    def get_event_types(self) -> list[str]:
        """Event types with at least one subscriber"""
        return list(self._event_handlers.keys())

    def clear(self) -> None:
        """Remove all subscribers"""
        self._event_handlers.clear()
