"""
Event bus - publish/subscribe channel for game events

Handlers are called synchronously in registration order. Every emitted event
is logged with the current tick so a session can be replayed or inspected.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger('rtscom.engine.events')

EventHandler = Callable[[Any], None]


class GameEventType(str, Enum):
    """Topics carried by the event bus"""
    # Engine lifecycle
    TICK = "tick"
    GAME_START = "game_start"
    GAME_PAUSE = "game_pause"
    GAME_RESUME = "game_resume"

    # Units
    UNIT_SPAWNED = "unit_spawned"
    UNIT_DESTROYED = "unit_destroyed"
    UNIT_MOVED = "unit_moved"
    UNIT_ATTACKED = "unit_attacked"
    UNIT_DAMAGED = "unit_damaged"

    # Commands
    PLAYER_COMMAND = "player_command"
    UNIT_COMMAND = "unit_command"

    # Communication
    UNIT_COMMUNICATION = "unit_communication"
    UNIT_REPORT = "unit_report"

    # Resources
    RESOURCE_GATHERED = "resource_gathered"
    RESOURCE_DEPOSITED = "resource_deposited"
    RESOURCE_DEPLETED = "resource_depleted"

    # Buildings
    BUILDING_STARTED = "building_started"
    BUILDING_COMPLETED = "building_completed"
    BUILDING_DESTROYED = "building_destroyed"
    PRODUCTION_STARTED = "production_started"
    PRODUCTION_COMPLETED = "production_completed"

    # Vision
    ENEMY_SPOTTED = "enemy_spotted"
    AREA_EXPLORED = "area_explored"


@dataclass
class GameEvent:
    type: GameEventType
    data: Any
    tick: int
    timestamp: float


class EventBus:
    """
    Synchronous publish/subscribe dispatcher
    """

    def __init__(self):
        self._handlers: Dict[GameEventType, List[EventHandler]] = {}
        self._event_log: List[GameEvent] = []
        self._current_tick = 0

    def set_tick(self, tick: int):
        """Update the current tick (called by the host loop each step)"""
        self._current_tick = tick

    def get_tick(self) -> int:
        return self._current_tick

    def on(self, event: GameEventType, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe to an event

        Args:
            event: Event topic
            handler: Callable receiving the event payload

        Returns:
            Function that removes the subscription
        """
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(event, handler)

    def once(self, event: GameEventType, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to an event, auto-unsubscribing after the first delivery"""
        def wrapper(data):
            self.off(event, wrapper)
            handler(data)
        return self.on(event, wrapper)

    def off(self, event: GameEventType, handler: EventHandler):
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: GameEventType, data: Any = None):
        """
        Emit an event to all subscribers

        A handler that raises is logged and skipped; remaining handlers
        still receive the event.
        """
        self._event_log.append(GameEvent(
            type=event,
            data=data,
            tick=self._current_tick,
            timestamp=time.time(),
        ))

        for handler in list(self._handlers.get(event, [])):
            try:
                handler(data)
            except Exception:
                logger.exception('Handler for %s failed at tick %d', event.value, self._current_tick)

    def get_log(self) -> List[GameEvent]:
        return list(self._event_log)

    def get_log_by_type(self, event: GameEventType) -> List[GameEvent]:
        return [e for e in self._event_log if e.type == event]

    def clear_log(self):
        self._event_log = []

    def remove_all_listeners(self):
        self._handlers.clear()


def event_field(data: Any, *names: str, default: Any = None) -> Any:
    """
    First non-None key or attribute of an event payload among names

    Payloads arrive as dicts (camelCase or snake_case keys) or as model
    objects, so callers list every spelling they accept.
    """
    if data is None:
        return default
    for name in names:
        if isinstance(data, dict):
            if data.get(name) is not None:
                return data[name]
        elif getattr(data, name, None) is not None:
            return getattr(data, name)
    return default
