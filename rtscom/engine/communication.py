"""
Communication - unit-to-unit messaging

Messages are kept in one time-ordered store and handed to a unit's brain on
its next think. Broadcasts fan out to friendly units within range, one
addressed message per recipient. Old messages are pruned on a retention
window so the store stays bounded however long a session runs.
"""

import itertools
import logging
from typing import List, Optional

from ..models.grid import GridPosition
from ..models.world import AuditLogEntry, Unit, UnitMessage, WorldState
from .events import EventBus, GameEventType

logger = logging.getLogger('rtscom.engine.communication')

# Tiles
COMMUNICATION_RANGE = 6

# Ticks
MESSAGE_RETENTION_TICKS = 200

SHARED_INTEL_ENTRIES = 3


class Communication:
    """
    Message store for one session

    Args:
        event_bus: Bus on which every sent message is announced
        retention_ticks: Age after which cleanup_old_messages() may drop a message
    """

    def __init__(self, event_bus: EventBus, retention_ticks: int = MESSAGE_RETENTION_TICKS):
        self.event_bus = event_bus
        self.retention_ticks = retention_ticks
        self.messages: List[UnitMessage] = []
        self._ids = itertools.count()

    def send_message(
        self,
        from_unit: Unit,
        to_unit_id: Optional[str],
        content: str,
        tick: int,
        message_type: str = "communication"
    ) -> UnitMessage:
        """
        Store a message and announce it on the bus

        Args:
            from_unit: Sending unit
            to_unit_id: Recipient, or None for a message every unit may read
            content: Message text
            tick: Current tick
            message_type: communication, command or report

        Returns:
            The stored UnitMessage
        """
        message = UnitMessage(
            id=f"msg_{next(self._ids)}",
            from_unit_id=from_unit.id,
            content=content,
            tick=tick,
            to_unit_id=to_unit_id,
            position=GridPosition(col=from_unit.position.col, row=from_unit.position.row),
            type=message_type,
        )
        self.messages.append(message)
        self.event_bus.emit(GameEventType.UNIT_COMMUNICATION, message)
        return message

    def broadcast_nearby(
        self,
        from_unit: Unit,
        content: str,
        world: WorldState,
        tick: int,
        radius: float = COMMUNICATION_RANGE
    ) -> List[UnitMessage]:
        """Send content to every live friendly unit within radius tiles"""
        sent = [
            self.send_message(from_unit, unit.id, content, tick)
            for unit in world.units_in_range(from_unit.position, radius)
            if unit.id != from_unit.id and unit.player_id == from_unit.player_id
        ]
        logger.debug('%s broadcast to %d units: %s', from_unit.id, len(sent), content)
        return sent

    def share_audit_log(self, from_unit: Unit, to_unit_id: str, tick: int) -> List[UnitMessage]:
        """Forward the sender's latest enemy sightings to another unit"""
        sightings = [
            entry for entry in from_unit.audit_log
            if entry.type == 'observation' and _mentions_enemy(entry)
        ]
        return [
            self.send_message(from_unit, to_unit_id, f"[Intel from tick {entry.tick}] {entry.message}", tick)
            for entry in sightings[-SHARED_INTEL_ENTRIES:]
        ]

    def get_messages_for_unit(self, unit_id: str, since_tick: Optional[int] = None) -> List[UnitMessage]:
        """Messages addressed to unit_id or to everyone, optionally from since_tick on"""
        return [
            msg for msg in self.messages
            if msg.to_unit_id in (unit_id, None) and (since_tick is None or msg.tick >= since_tick)
        ]

    def cleanup_old_messages(self, before_tick: int) -> int:
        """
        Drop every message sent before before_tick

        Returns:
            Number of messages removed
        """
        kept = [msg for msg in self.messages if msg.tick >= before_tick]
        removed = len(self.messages) - len(kept)
        self.messages = kept
        if removed:
            logger.debug('Pruned %d messages older than tick %d', removed, before_tick)
        return removed

    def forget_unit(self, unit_id: str):
        """Drop undelivered messages addressed to a unit that no longer exists"""
        self.messages = [msg for msg in self.messages if msg.to_unit_id != unit_id]

    def get_recent_messages(self, count: int = 50) -> List[UnitMessage]:
        return self.messages[-count:] if count > 0 else []


def _mentions_enemy(entry: AuditLogEntry) -> bool:
    text = entry.message.lower()
    return 'enemy' in text or 'spotted' in text
