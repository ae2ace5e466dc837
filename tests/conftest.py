"""Shared fixtures: in-memory worlds and scripted decision sources."""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from rtscom.ai.errors import DecisionSourceError
from rtscom.engine.events import EventBus, GameEventType
from rtscom.models.grid import GridPosition
from rtscom.models.world import (
    FogState, PlayerResources, ResourceType, Unit, UnitType, UNIT_STATS, WorldState,
)
from rtscom.runtime.coordinator import StrategicCoordinator


PLAYER = "0"
ENEMY = "1"


def make_world(width: int = 20, height: int = 20, fog: FogState = FogState.VISIBLE) -> WorldState:
    """Blank map with a uniform fog layer for both players."""
    world = WorldState.blank(width, height)
    for player in (PLAYER, ENEMY):
        world.fog[player] = [[fog for _ in range(width)] for _ in range(height)]
        world.resources[player] = PlayerResources(minerals=100, energy=50)
    return world


def add_unit(world: WorldState, unit_id: str, unit_type: UnitType, player_id: str,
             col: int, row: int, health: Optional[float] = None) -> Unit:
    unit = Unit(
        id=unit_id,
        type=unit_type,
        player_id=player_id,
        position=GridPosition(col=col, row=row),
        health=UNIT_STATS[unit_type].max_health if health is None else health,
    )
    world.units.append(unit)
    return unit


def add_resource(world: WorldState, col: int, row: int,
                 resource: ResourceType = ResourceType.MINERALS, amount: int = 100):
    tile = world.tiles[row][col]
    tile.resource = resource
    tile.resource_amount = amount


def voice_command(transcript: str, targets: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"type": "voice", "payload": {"transcript": transcript}, "targetUnitIds": targets or []}


class ScriptedSource:
    """Returns queued payloads (or raises queued exceptions) in order; repeats the last one."""

    provider_name = "scripted"

    def __init__(self, *responses: Union[Dict[str, Any], Exception, Callable[[str], Any]]):
        self.responses = list(responses) or [{"directives": []}]
        self.prompts: List[str] = []
        self.action_calls: List[str] = []

    def _next(self):
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        self.prompts.append(perception)
        response = self._next()
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(perception)
        return response

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        self.action_calls.append(perception)
        response = self._next()
        if isinstance(response, Exception):
            raise response
        return response


class SlowSource(ScriptedSource):
    """Blocks every call until release() is called."""

    def __init__(self, *responses):
        super().__init__(*responses)
        self.gate = asyncio.Event()
        self.started = 0

    def release(self):
        self.gate.set()

    async def generate_directives(self, perception: str) -> Dict[str, Any]:
        self.started += 1
        await self.gate.wait()
        return await super().generate_directives(perception)

    async def generate_action(self, perception: str, unit_type: str) -> Dict[str, Any]:
        self.started += 1
        await self.gate.wait()
        return await super().generate_action(perception, unit_type)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def world():
    return make_world()


@pytest.fixture
def make_coordinator(bus, world):
    """Factory building a coordinator for PLAYER over the shared world."""
    def factory(source=None, config=None, **kwargs):
        return StrategicCoordinator(PLAYER, bus, lambda: world, source=source, config=config, **kwargs)
    return factory


@pytest.fixture
def command(bus):
    """Emit a targeted voice command on the bus."""
    def emit(transcript: str, targets: Optional[List[str]] = None):
        bus.emit(GameEventType.UNIT_COMMAND, voice_command(transcript, targets))
    return emit


def server_error(status: int = 500) -> DecisionSourceError:
    return DecisionSourceError(f"HTTP {status}", status=status)


async def settle(rounds: int = 5):
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def restore_rtscom_logger():
    """Undo setup_logging() so file handlers never leak between tests"""
    logger = logging.getLogger("rtscom")
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
