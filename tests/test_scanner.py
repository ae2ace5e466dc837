"""Tests for WorldScanner snapshot ingestion"""
import pytest

from rtscom.models.grid import GridPosition
from rtscom.models.world import BuildingType, FogState, ResourceType, TerrainType, UnitType
from rtscom.world.scanner import WorldScanner


def snapshot(**overrides):
    data = {
        "width": 3,
        "height": 2,
        "tick": 120,
        "resource_tiles": [{"col": 2, "row": 1, "resource": "energy", "amount": 40}],
        "units": [
            {"id": "U1", "type": "engineer", "player_id": 0, "position": {"col": 1, "row": 0}, "health": 50,
             "carrying_type": "minerals", "carrying_amount": 5,
             "audit_log": [{"tick": 100, "message": "Arrived", "source": "U1", "type": "action"}],
             "afflictions": [{"type": "slowed", "duration": 30}]},
            {"id": "E1", "type": "scout", "player_id": "1", "position": [2, 1], "health": 40},
        ],
        "buildings": [
            {"id": "B1", "type": "base", "player_id": 0, "position": {"col": 0, "row": 0}, "health": 500},
        ],
        "fog": {"0": [["visible", "visible", "explored"], ["unexplored", "visible", "visible"]]},
        "resources": {"0": {"minerals": 150, "energy": 20}},
    }
    data.update(overrides)
    return data


def test_ingest_snapshot():
    scanner = WorldScanner()
    assert not scanner.has_state()

    world = scanner.ingest_snapshot(snapshot())

    assert scanner.has_state()
    assert scanner.get_current_state() is world
    assert scanner.snapshot_count == 1
    assert world.tick == 120
    assert world.resource_at(GridPosition(2, 1)) == ResourceType.ENERGY
    assert world.tiles[1][2].resource_amount == 40

    engineer = world.get_unit("U1")
    assert engineer.player_id == "0"
    assert engineer.type == UnitType.ENGINEER
    assert engineer.carrying_type == ResourceType.MINERALS
    assert engineer.audit_log[0].message == "Arrived"
    assert engineer.afflictions[0].duration == 30
    assert world.get_unit("E1").position == GridPosition(2, 1)

    assert world.buildings[0].type == BuildingType.BASE
    assert world.fog_state("0", GridPosition(0, 1)) == FogState.UNEXPLORED
    assert world.resources_for_player("0").minerals == 150


def test_full_tile_grid():
    tiles = [
        [{"terrain": "plains"}, {"terrain": "water"}, {}],
        [{"resource": "minerals", "resource_amount": 80}, {"terrain": "forest"}, {"terrain": "swamp"}],
    ]

    world = WorldScanner().ingest_snapshot(snapshot(tiles=tiles))

    assert world.tiles[0][1].terrain == TerrainType.WATER
    assert world.resource_at(GridPosition(0, 1)) == ResourceType.MINERALS
    # An explicit grid replaces the sparse resource list
    assert world.resource_at(GridPosition(2, 1)) is None


@pytest.mark.parametrize("bad", [
    {"width": None},
    {"tiles": [[{}]]},
    {"units": [{"id": "U1", "type": "dragon", "player_id": 0, "position": [0, 0], "health": 1}]},
    {"fog": {"0": [["foggy"]]}},
    {"resource_tiles": [{"col": 9, "row": 9, "resource": "minerals"}]},
])
def test_invalid_snapshot_raises_value_error(bad):
    scanner = WorldScanner()

    with pytest.raises(ValueError):
        scanner.ingest_snapshot(snapshot(**bad))

    assert not scanner.has_state()
