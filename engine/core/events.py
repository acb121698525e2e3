"""
Typed event bus.

The dialogue runtime, audio manager and save manager all publish on one
bus, so a host can drive UI feedback (continue icon, save toast, transcript
refresh) without the core knowing about widgets.

Usage:
    events = EventBus()
    events.subscribe(DialogueEvent.LINE_PRESENTED, dialogue_box.on_line)
    events.publish(DialogueEvent.LINE_PRESENTED, speaker="Ava", text="Hi")

Handlers are held weakly by default: a bound method stops receiving events
once its object is garbage collected.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Union
from weakref import WeakMethod, ref

logger = logging.getLogger(__name__)


class DialogueEvent(Enum):
    """Published by the dialogue runtime."""
    NODE_ENTERED = auto()
    NODE_COMPLETED = auto()
    LINE_PRESENTED = auto()
    TEXT_COMPLETED = auto()
    DECISION_REQUESTED = auto()
    DECISION_MADE = auto()
    COMMAND_EXECUTED = auto()
    PLAYBACK_CHANGED = auto()
    AUTO_SAVE_REQUESTED = auto()
    SESSION_ENDED = auto()
    LOAD_FAILED = auto()


class AudioEvent(Enum):
    BGM_STARTED = auto()
    BGM_STOPPED = auto()
    SFX_PLAYED = auto()


class SaveEvent(Enum):
    SAVE_COMPLETED = auto()
    SAVE_FAILED = auto()
    LOAD_COMPLETED = auto()
    LOAD_FAILED = auto()


@dataclass
class Event:
    """
    A published event.

    Keyword arguments given to ``publish`` end up in ``data`` and can be
    read with ``event["key"]`` or ``event.get("key", default)``.
    """
    type: Enum
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


EventHandler = Callable[[Event], None]
HandlerRef = Union[EventHandler, ref, WeakMethod]


class EventBus:
    """
    Publish/subscribe dispatcher keyed by event enum.

    Handlers run synchronously in subscription order. An event published
    while another is being dispatched waits until that dispatch is over, so
    handlers always see events in publication order. A handler that raises
    is logged and the remaining handlers still run.
    """

    def __init__(self):
        self._handlers: dict[Enum, list[HandlerRef]] = {}
        self._pending: deque[Event] = deque()
        self._dispatching = False

    def subscribe(self, event_type: Enum, handler: EventHandler, weak: bool = True) -> None:
        """
        Register ``handler`` for ``event_type``.

        Args:
            event_type: Enum member to listen for
            handler: Called with the Event
            weak: Hold the handler by weak reference. Pass False for lambdas
                and closures that nothing else keeps alive.
        """
        if weak:
            handler_ref: HandlerRef = WeakMethod(handler) if hasattr(handler, "__self__") else ref(handler)
        else:
            handler_ref = handler
        self._handlers.setdefault(event_type, []).append(handler_ref)

    def unsubscribe(self, event_type: Enum, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers:
            handlers[:] = [h for h in handlers if _resolve(h) != handler]

    def clear(self, event_type: Enum | None = None) -> None:
        """Drop the handlers of one event type, or of every type."""
        if event_type is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event_type, None)

    def has_subscribers(self, event_type: Enum) -> bool:
        return any(_resolve(h) is not None for h in self._handlers.get(event_type, ()))

    def publish(self, event_type: Enum, **data: Any) -> Event:
        event = Event(type=event_type, data=data)
        self._pending.append(event)
        if not self._dispatching:
            self._dispatch_pending()
        return event

    def _dispatch_pending(self) -> None:
        self._dispatching = True
        try:
            while self._pending:
                self._dispatch(self._pending.popleft())
        finally:
            self._dispatching = False

    def _dispatch(self, event: Event) -> None:
        handlers = self._handlers.get(event.type)
        if not handlers:
            return

        dead = False
        for handler_ref in list(handlers):
            handler = _resolve(handler_ref)
            if handler is None:
                dead = True
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Error in event handler for %s", event.type)

        if dead:
            handlers[:] = [h for h in handlers if _resolve(h) is not None]


def _resolve(handler_ref: HandlerRef) -> EventHandler | None:
    if isinstance(handler_ref, (ref, WeakMethod)):
        return handler_ref()
    return handler_ref
