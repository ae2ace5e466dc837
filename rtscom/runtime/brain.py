"""
Unit brain - per-unit decision loop

Each brain is throttled by its own think interval, independent of the
strategic coordinator, and buffers exactly one pending action for the
host loop to consume.
"""

import logging
from typing import Any, Dict, List, Optional

from ..models.perception import UnitAction, UnitPerception
from ..models.world import Unit, UnitMessage, UnitType, WorldState
from ..perception.builder import DEFAULT_AUDIT_LOG_ENTRIES, build_unit_perception

logger = logging.getLogger('rtscom.runtime.brain')

THINK_INTERVALS = {
    UnitType.SCOUT: 5,
    UnitType.CAPTAIN: 6,
    UnitType.SOLDIER: 8,
    UnitType.ENGINEER: 12,
}
DEFAULT_THINK_INTERVAL = 10


def think_interval_for(unit_type: UnitType, config: Optional[Dict[str, Any]] = None) -> int:
    """Think interval in ticks for a unit type, honoring units config overrides"""
    config = config or {}
    overrides = config.get('think_intervals') or {}
    if unit_type.value in overrides:
        return overrides[unit_type.value]
    return THINK_INTERVALS.get(unit_type, config.get('default_think_interval', DEFAULT_THINK_INTERVAL))


class UnitBrain:
    """
    Decision loop for a single unit

    Args:
        unit_id: Unit this brain thinks for
        unit_type: Type, selects the think interval
        player_id: Owner, passed to the controller
        controller: Object with async request_action(perception, player_id)
        units_config: Optional units configuration section
    """

    def __init__(self, unit_id: str, unit_type: UnitType, player_id: str, controller,
                 units_config: Optional[Dict[str, Any]] = None):
        units_config = units_config or {}
        self.unit_id = unit_id
        self.unit_type = unit_type
        self.player_id = player_id
        self.controller = controller
        self.think_interval = think_interval_for(unit_type, units_config)
        self.audit_log_entries = units_config.get('audit_log_entries', DEFAULT_AUDIT_LOG_ENTRIES)
        self.last_think_tick = 0
        self.pending_action: Optional[UnitAction] = None

    def should_think(self, tick: int) -> bool:
        return tick - self.last_think_tick >= self.think_interval

    async def think(
        self,
        unit: Unit,
        world: WorldState,
        tick: int,
        messages: Optional[List[UnitMessage]] = None
    ) -> UnitAction:
        """
        Build a perception and request an action from the controller

        The result overwrites any action still pending (last write wins).

        Returns:
            The chosen action
        """
        perception = self.build_perception(unit, world, messages)
        action = await self.controller.request_action(perception, self.player_id)

        self.last_think_tick = tick
        self.pending_action = action
        logger.debug('%s %s decided %s at tick %d', self.unit_type.value, self.unit_id, action.type, tick)
        return action

    def get_pending_action(self) -> Optional[UnitAction]:
        """Retrieve and clear the pending action"""
        action = self.pending_action
        self.pending_action = None
        return action

    def build_perception(self, unit: Unit, world: WorldState,
                         messages: Optional[List[UnitMessage]] = None) -> UnitPerception:
        return build_unit_perception(unit, world, messages, audit_log_entries=self.audit_log_entries)
