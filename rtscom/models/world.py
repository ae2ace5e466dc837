"""
World state data models

These classes represent the game world at a point in time, as seen by the
decision layer. Terrain, fog and combat are computed elsewhere; this module
only holds their results and answers read-only queries.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Optional

from .grid import GridPosition, grid_distance


class TerrainType(str, Enum):
    PLAINS = "plains"
    FOREST = "forest"
    MOUNTAIN = "mountain"
    WATER = "water"
    SWAMP = "swamp"


class ResourceType(str, Enum):
    MINERALS = "minerals"
    ENERGY = "energy"


class UnitType(str, Enum):
    ENGINEER = "engineer"
    SCOUT = "scout"
    MESSENGER = "messenger"
    SPY = "spy"
    SOLDIER = "soldier"
    SIEGE = "siege"
    CAPTAIN = "captain"


class BuildingType(str, Enum):
    BASE = "base"
    BARRACKS = "barracks"
    FACTORY = "factory"
    WATCHTOWER = "watchtower"


class AfflictionType(str, Enum):
    POISONED = "poisoned"
    SLOWED = "slowed"
    STUNNED = "stunned"
    BLINDED = "blinded"


class FogState(str, Enum):
    """Per-player visibility of a tile"""
    UNEXPLORED = "unexplored"
    EXPLORED = "explored"  # seen before, not currently in vision
    VISIBLE = "visible"


@dataclass(frozen=True)
class UnitStats:
    max_health: int
    max_energy: int
    attack: int
    defense: int
    move_speed: float  # tiles per second
    vision_range: int  # tiles (radius)
    attack_range: int


UNIT_STATS: Dict[UnitType, UnitStats] = {
    UnitType.ENGINEER: UnitStats(50, 100, 5, 5, 1.5, 4, 1),
    UnitType.SCOUT: UnitStats(40, 80, 10, 3, 3.0, 8, 1),
    UnitType.MESSENGER: UnitStats(30, 120, 5, 2, 4.0, 5, 1),
    UnitType.SPY: UnitStats(35, 100, 8, 3, 2.5, 6, 1),
    UnitType.SOLDIER: UnitStats(100, 60, 25, 15, 2.0, 5, 1),
    UnitType.SIEGE: UnitStats(80, 80, 50, 10, 0.5, 4, 6),
    UnitType.CAPTAIN: UnitStats(80, 100, 20, 12, 2.0, 6, 1),
}


@dataclass
class Affliction:
    type: AfflictionType
    duration: int  # ticks remaining
    severity: float = 0.5  # 0-1


@dataclass
class AuditLogEntry:
    """One line of a unit's activity log"""
    tick: int
    message: str
    source: str  # unit id or 'player'
    type: str = "status"  # command, observation, communication, action, status
    timestamp: float = 0.0


@dataclass
class UnitMessage:
    """Message delivered to a unit by another unit or the player"""
    id: str
    from_unit_id: str
    content: str
    tick: int
    to_unit_id: Optional[str] = None  # None = broadcast to nearby units
    position: Optional[GridPosition] = None
    type: str = "communication"


@dataclass
class Unit:
    """Represents a unit on the map"""
    id: str
    type: UnitType
    player_id: str
    position: GridPosition
    health: float
    energy: float = 0.0
    afflictions: List[Affliction] = field(default_factory=list)
    current_command: Optional[str] = None
    audit_log: List[AuditLogEntry] = field(default_factory=list)
    carrying_type: Optional[ResourceType] = None
    carrying_amount: int = 0
    last_thought: Optional[str] = None

    @property
    def stats(self) -> UnitStats:
        return UNIT_STATS[self.type]

    @property
    def max_health(self) -> int:
        return self.stats.max_health

    @property
    def health_percent(self) -> int:
        """Health as a rounded percentage of max health"""
        if self.max_health <= 0:
            return 0
        return int(round(self.health / self.max_health * 100))

    def is_alive(self) -> bool:
        return self.health > 0


@dataclass
class Building:
    """Represents a building owned by a player"""
    id: str
    type: BuildingType
    player_id: str
    position: GridPosition
    health: float = 0.0
    is_constructing: bool = False
    construction_progress: float = 0.0  # 0.0 - 1.0


@dataclass
class MapTile:
    terrain: TerrainType = TerrainType.PLAINS
    resource: Optional[ResourceType] = None
    resource_amount: int = 0

    @property
    def walkable(self) -> bool:
        return self.terrain != TerrainType.WATER

    @property
    def has_resource(self) -> bool:
        return self.resource is not None and self.resource_amount > 0


@dataclass
class PlayerResources:
    minerals: int = 0
    energy: int = 0


@dataclass
class WorldState:
    """Complete world state snapshot"""
    width: int
    height: int
    tiles: List[List[MapTile]]  # indexed [row][col]
    units: List[Unit] = field(default_factory=list)
    buildings: List[Building] = field(default_factory=list)
    fog: Dict[str, List[List[FogState]]] = field(default_factory=dict)  # player_id -> [row][col]
    resources: Dict[str, PlayerResources] = field(default_factory=dict)
    tick: int = 0

    @classmethod
    def blank(cls, width: int, height: int) -> 'WorldState':
        """Create an all-plains map with no units and no resources"""
        tiles = [[MapTile() for _ in range(width)] for _ in range(height)]
        return cls(width=width, height=height, tiles=tiles)

    def in_bounds(self, pos: GridPosition) -> bool:
        return 0 <= pos.col < self.width and 0 <= pos.row < self.height

    def get_tile(self, pos: GridPosition) -> Optional[MapTile]:
        if not self.in_bounds(pos):
            return None
        return self.tiles[pos.row][pos.col]

    def resource_at(self, pos: GridPosition) -> Optional[ResourceType]:
        """Resource type on a tile, or None if the tile is empty or depleted"""
        tile = self.get_tile(pos)
        if tile is None or not tile.has_resource:
            return None
        return tile.resource

    def fog_grid(self, player_id: str) -> Optional[List[List[FogState]]]:
        return self.fog.get(player_id)

    def fog_state(self, player_id: str, pos: GridPosition) -> FogState:
        grid = self.fog.get(player_id)
        if grid is None or not self.in_bounds(pos):
            return FogState.UNEXPLORED
        return grid[pos.row][pos.col]

    def is_visible(self, player_id: str, pos: GridPosition) -> bool:
        return self.fog_state(player_id, pos) == FogState.VISIBLE

    def explored_percentage(self, player_id: str) -> int:
        grid = self.fog.get(player_id)
        if not grid:
            return 0
        total = 0
        explored = 0
        for row in grid:
            for cell in row:
                total += 1
                if cell != FogState.UNEXPLORED:
                    explored += 1
        return int(round(explored / total * 100)) if total else 0

    @property
    def all_units(self) -> List[Unit]:
        return list(self.units)

    def get_unit(self, unit_id: str) -> Optional[Unit]:
        """Find a unit by ID"""
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def units_for_player(self, player_id: str) -> List[Unit]:
        return [u for u in self.units if u.player_id == player_id]

    def units_in_range(self, center: GridPosition, radius: float) -> List[Unit]:
        return [u for u in self.units if u.is_alive() and grid_distance(u.position, center) <= radius]

    def buildings_for_player(self, player_id: str) -> List[Building]:
        return [b for b in self.buildings if b.player_id == player_id]

    def resources_for_player(self, player_id: str) -> PlayerResources:
        return self.resources.get(player_id, PlayerResources())
