"""
Perception builder - the "lens" through which a single unit sees the world
"""

import math
from typing import List, Optional, Tuple

from ..models.grid import GridPosition, position_to_label
from ..models.perception import SelfStatus, UnitPerception, VisibleTerrain, VisibleUnit
from ..models.world import FogState, MapTile, ResourceType, Unit, UnitMessage, WorldState

DEFAULT_AUDIT_LOG_ENTRIES = 10


def tiles_in_range(world: WorldState, center: GridPosition, radius: float) -> List[Tuple[GridPosition, MapTile]]:
    """All on-map tiles within a circular radius of center"""
    tiles = []
    reach = int(math.ceil(radius))
    for dr in range(-reach, reach + 1):
        for dc in range(-reach, reach + 1):
            if math.sqrt(dc * dc + dr * dr) > radius:
                continue
            pos = GridPosition(col=center.col + dc, row=center.row + dr)
            tile = world.get_tile(pos)
            if tile is not None:
                tiles.append((pos, tile))
    return tiles


def visible_resource_tiles(world: WorldState, player_id: str) -> List[Tuple[GridPosition, ResourceType]]:
    """Resource tiles the player has seen (visible or explored), row-major order"""
    results = []
    grid = world.fog_grid(player_id)
    if not grid:
        return results
    for row, cells in enumerate(grid):
        for col, cell in enumerate(cells):
            if cell == FogState.UNEXPLORED:
                continue
            pos = GridPosition(col=col, row=row)
            resource = world.resource_at(pos)
            if resource is not None:
                results.append((pos, resource))
    return results


def build_unit_perception(
    unit: Unit,
    world: WorldState,
    messages: Optional[List[UnitMessage]] = None,
    audit_log_entries: int = DEFAULT_AUDIT_LOG_ENTRIES
) -> UnitPerception:
    """
    Build a unit's perception from the world snapshot

    Args:
        unit: The perceiving unit
        world: Current world state
        messages: Messages delivered to the unit since its last think
        audit_log_entries: How many trailing audit entries to include

    Returns:
        UnitPerception
    """
    stats = unit.stats
    origin = unit.position

    status = SelfStatus(
        id=unit.id,
        type=unit.type,
        position=origin,
        grid_label=position_to_label(origin),
        health=unit.health,
        max_health=stats.max_health,
        energy=unit.energy,
        max_energy=stats.max_energy,
        afflictions=list(unit.afflictions),
    )

    visible_units = []
    for other in world.units_in_range(origin, stats.vision_range):
        if other.id == unit.id:
            continue
        visible_units.append(VisibleUnit(
            id=other.id,
            type=other.type,
            dx=other.position.col - origin.col,
            dy=other.position.row - origin.row,
            grid_label=position_to_label(other.position),
            is_friendly=other.player_id == unit.player_id,
            health_percent=other.health / other.max_health if other.max_health > 0 else 0.0,
        ))

    visible_terrain = []
    for pos, tile in tiles_in_range(world, origin, stats.vision_range):
        visible_terrain.append(VisibleTerrain(
            grid_label=position_to_label(pos),
            type=tile.terrain,
            has_resource=tile.resource is not None,
            walkable=tile.walkable,
            dx=pos.col - origin.col,
            dy=pos.row - origin.row,
            resource_type=tile.resource,
        ))

    recent = unit.audit_log[-audit_log_entries:] if audit_log_entries > 0 else []

    return UnitPerception(
        status=status,
        visible_units=visible_units,
        visible_terrain=visible_terrain,
        recent_audit_log=list(recent),
        current_command=unit.current_command,
        nearby_messages=list(messages or []),
    )
