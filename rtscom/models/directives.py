"""
Directive data models

Directives represent the strategic intent the coordinator has assigned to a
unit. They are decided here and executed elsewhere.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .grid import GridPosition

_SEPARATORS = re.compile(r'[\s-]')

DEFAULT_PRIORITY = 3
IDLE_PRIORITY = 1


class DirectiveType(str, Enum):
    """Types of directives the coordinator can assign"""
    GATHER_RESOURCES = "gather_resources"
    EXPLORE_AREA = "explore_area"
    DEFEND_POSITION = "defend_position"
    ATTACK_MOVE = "attack_move"
    PATROL_AREA = "patrol_area"
    BUILD_STRUCTURE = "build_structure"
    RETREAT = "retreat"
    ESCORT = "escort"
    IDLE = "idle"


def parse_directive_type(value: Any) -> Optional[DirectiveType]:
    """
    Normalize a directive type string from a decision source

    Case-folds and converts spaces/dashes to underscores. Unrecognized
    values are rejected, never coerced to a near match.

    Args:
        value: Raw type value

    Returns:
        DirectiveType or None if unrecognized
    """
    if not isinstance(value, str):
        return None
    normalized = _SEPARATORS.sub('_', value.strip().lower())
    try:
        return DirectiveType(normalized)
    except ValueError:
        return None


@dataclass
class DirectiveProposal:
    """
    A directive as proposed by a decision source, before validation

    Attributes:
        unit_id: Unit the proposal is for
        type: Raw type string (normalized during validation)
        target: Raw target coordinates, unclamped
        target_unit_id: Target unit (escort/attack)
        building_type: Building to construct
        resource_type: Resource to gather
        priority: Proposed priority, if any
        reasoning: Free-text rationale
    """
    unit_id: str
    type: str
    target: Optional[Dict[str, float]] = None
    target_unit_id: Optional[str] = None
    building_type: Optional[str] = None
    resource_type: Optional[str] = None
    priority: Optional[int] = None
    reasoning: Optional[str] = None


@dataclass
class Directive:
    """
    Persistent strategic order for one unit

    Attributes:
        unit_id: Owning unit
        type: Directive type
        target_position: Clamped target tile
        target_unit_id: Target unit (escort/attack)
        building_type: Building to construct
        resource_type: Resource to gather
        priority: 1-5, metadata for executors only
        reasoning: Rationale shown in the unit log
        created_at_tick: Tick the directive was issued
        ttl: Recorded for observability, never used for expiry
        completed: Set by the executor when the directive is done
    """
    unit_id: str
    type: DirectiveType
    created_at_tick: int
    ttl: int
    priority: int = DEFAULT_PRIORITY
    target_position: Optional[GridPosition] = None
    target_unit_id: Optional[str] = None
    building_type: Optional[str] = None
    resource_type: Optional[str] = None
    reasoning: Optional[str] = None
    completed: bool = False

    @property
    def is_active(self) -> bool:
        return not self.completed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "unit_id": self.unit_id,
            "type": self.type.value,
            "target_position": self.target_position.to_dict() if self.target_position else None,
            "target_unit_id": self.target_unit_id,
            "building_type": self.building_type,
            "resource_type": self.resource_type,
            "priority": self.priority,
            "reasoning": self.reasoning,
            "created_at_tick": self.created_at_tick,
            "ttl": self.ttl,
            "completed": self.completed,
        }
