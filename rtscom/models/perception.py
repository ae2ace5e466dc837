"""
Unit perception and action models

A UnitPerception is the narrow, per-unit view handed to an action source.
It is rebuilt every think cycle and never persisted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .grid import GridPosition
from .world import Affliction, AuditLogEntry, ResourceType, TerrainType, UnitMessage, UnitType

ACTION_TYPES = ('move', 'attack', 'gather', 'build', 'communicate', 'idle', 'special')


@dataclass
class SelfStatus:
    id: str
    type: UnitType
    position: GridPosition
    grid_label: str
    health: float
    max_health: int
    energy: float
    max_energy: int
    afflictions: List[Affliction] = field(default_factory=list)


@dataclass
class VisibleUnit:
    id: str
    type: UnitType
    dx: int
    dy: int
    grid_label: str
    is_friendly: bool
    health_percent: float  # 0.0 - 1.0


@dataclass
class VisibleTerrain:
    grid_label: str
    type: TerrainType
    has_resource: bool
    walkable: bool
    dx: int
    dy: int
    resource_type: Optional[ResourceType] = None


@dataclass
class UnitPerception:
    """Snapshot of what a single unit knows this think cycle"""
    status: SelfStatus
    visible_units: List[VisibleUnit] = field(default_factory=list)
    visible_terrain: List[VisibleTerrain] = field(default_factory=list)
    recent_audit_log: List[AuditLogEntry] = field(default_factory=list)
    current_command: Optional[str] = None
    nearby_messages: List[UnitMessage] = field(default_factory=list)


@dataclass
class UnitAction:
    """
    A single tactical action chosen for a unit

    Attributes:
        type: One of ACTION_TYPES
        target: Target tile for move/gather
        target_unit_id: Unit to attack
        message: Content for communicate actions
        building_type: Building to construct
        details: Short rationale
    """
    type: str = 'idle'
    target: Optional[GridPosition] = None
    target_unit_id: Optional[str] = None
    message: Optional[str] = None
    building_type: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UnitAction':
        """
        Build an action from a decision-source payload

        Raises:
            ValueError: If the payload is not a dict or the type is unknown
        """
        if not isinstance(data, dict):
            raise ValueError(f"Action payload must be an object, got {type(data).__name__}")
        action_type = str(data.get('type', '')).lower()
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Unknown action type: {data.get('type')!r}")

        target = None
        raw_target = data.get('target')
        if isinstance(raw_target, dict):
            try:
                target = GridPosition(col=int(round(float(raw_target['col']))),
                                      row=int(round(float(raw_target['row']))))
            except (KeyError, TypeError, ValueError, OverflowError):
                target = None

        return cls(
            type=action_type,
            target=target,
            target_unit_id=data.get('targetUnitId'),
            message=data.get('message'),
            building_type=data.get('buildingType'),
            details=data.get('details'),
        )
