"""
World scanner - turns host snapshots into WorldState objects
"""

import logging
from typing import Dict, Any, List, Optional

from ..models.grid import GridPosition
from ..models.world import (
    Affliction, AfflictionType, AuditLogEntry, Building, BuildingType, FogState,
    MapTile, PlayerResources, ResourceType, TerrainType, Unit, UnitType, WorldState,
)

logger = logging.getLogger('rtscom.world.scanner')


def _position(data: Any) -> GridPosition:
    if isinstance(data, (list, tuple)):
        return GridPosition(col=int(data[0]), row=int(data[1]))
    return GridPosition.from_dict(data)


class WorldScanner:
    """
    Processes world snapshots from the simulation and keeps the latest one
    """

    def __init__(self):
        self.current_state: Optional[WorldState] = None
        self.snapshot_count = 0

    def ingest_snapshot(self, snapshot_data: Dict[str, Any]) -> WorldState:
        """
        Process a world snapshot

        Args:
            snapshot_data: Dictionary with map size, tiles, fog, units and buildings

        Returns:
            WorldState object

        Raises:
            ValueError: If snapshot data is invalid
        """
        try:
            logger.debug('Processing world snapshot')

            width = int(snapshot_data['width'])
            height = int(snapshot_data['height'])
            tiles = self._parse_tiles(snapshot_data, width, height)

            units = [self._parse_unit(u) for u in snapshot_data.get('units', [])]

            buildings = []
            for building_data in snapshot_data.get('buildings', []):
                buildings.append(Building(
                    id=building_data['id'],
                    type=BuildingType(building_data['type']),
                    player_id=str(building_data['player_id']),
                    position=_position(building_data['position']),
                    health=building_data.get('health', 0.0),
                    is_constructing=building_data.get('is_constructing', False),
                    construction_progress=building_data.get('construction_progress', 0.0),
                ))

            fog = {}
            for player_id, grid in snapshot_data.get('fog', {}).items():
                fog[str(player_id)] = [[FogState(cell) for cell in row] for row in grid]

            resources = {}
            for player_id, amounts in snapshot_data.get('resources', {}).items():
                resources[str(player_id)] = PlayerResources(
                    minerals=amounts.get('minerals', 0),
                    energy=amounts.get('energy', 0),
                )

            world_state = WorldState(
                width=width,
                height=height,
                tiles=tiles,
                units=units,
                buildings=buildings,
                fog=fog,
                resources=resources,
                tick=snapshot_data.get('tick', 0),
            )

        except (KeyError, TypeError, ValueError, IndexError) as e:
            logger.exception('Failed to process snapshot')
            raise ValueError(f'Invalid snapshot data: {e}') from e

        self.current_state = world_state
        self.snapshot_count += 1

        logger.info(
            'Snapshot #%d processed (tick %d): %d units, %d buildings, %d fog layers',
            self.snapshot_count,
            world_state.tick,
            len(units),
            len(buildings),
            len(fog)
        )

        return world_state

    def _parse_tiles(self, snapshot_data: Dict[str, Any], width: int, height: int) -> List[List[MapTile]]:
        """Full tile grid if given, otherwise plains plus a sparse resource list"""
        raw_tiles = snapshot_data.get('tiles')
        if raw_tiles:
            tiles = []
            for row in raw_tiles:
                tiles.append([
                    MapTile(
                        terrain=TerrainType(cell.get('terrain', 'plains')),
                        resource=ResourceType(cell['resource']) if cell.get('resource') else None,
                        resource_amount=cell.get('resource_amount', 0),
                    )
                    for cell in row
                ])
            if len(tiles) != height or any(len(row) != width for row in tiles):
                raise ValueError('tile grid does not match map dimensions')
            return tiles

        tiles = [[MapTile() for _ in range(width)] for _ in range(height)]
        for entry in snapshot_data.get('resource_tiles', []):
            tile = tiles[int(entry['row'])][int(entry['col'])]
            tile.resource = ResourceType(entry['resource'])
            tile.resource_amount = entry.get('amount', 100)
        return tiles

    def _parse_unit(self, unit_data: Dict[str, Any]) -> Unit:
        audit_log = [
            AuditLogEntry(
                tick=entry.get('tick', 0),
                message=entry.get('message', ''),
                source=entry.get('source', ''),
                type=entry.get('type', 'status'),
                timestamp=entry.get('timestamp', 0.0),
            )
            for entry in unit_data.get('audit_log', [])
        ]
        afflictions = [
            Affliction(
                type=AfflictionType(a['type']),
                duration=a.get('duration', 0),
                severity=a.get('severity', 0.5),
            )
            for a in unit_data.get('afflictions', [])
        ]
        carrying = unit_data.get('carrying_type')
        return Unit(
            id=unit_data['id'],
            type=UnitType(unit_data['type']),
            player_id=str(unit_data['player_id']),
            position=_position(unit_data['position']),
            health=unit_data['health'],
            energy=unit_data.get('energy', 0.0),
            afflictions=afflictions,
            current_command=unit_data.get('current_command'),
            audit_log=audit_log,
            carrying_type=ResourceType(carrying) if carrying else None,
            carrying_amount=unit_data.get('carrying_amount', 0),
        )

    def get_current_state(self) -> Optional[WorldState]:
        """Get the current world state"""
        return self.current_state

    def has_state(self) -> bool:
        """Check if we have received at least one snapshot"""
        return self.current_state is not None
