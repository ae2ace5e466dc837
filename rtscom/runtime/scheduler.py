"""
AI scheduler - wires the coordinator and unit brains into the host tick loop

Each tick the host calls update(). Local-player units are driven by the
strategic coordinator's directives; every other unit gets a UnitBrain that
thinks on its own cadence. Decision-source calls run as asyncio tasks so
update() itself never waits on them.
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..ai.agent_controller import AgentController
from ..ai.provider_manager import LLMProviderManager
from ..config.defaults import merge_config
from ..engine.communication import COMMUNICATION_RANGE, MESSAGE_RETENTION_TICKS, Communication
from ..engine.events import EventBus, GameEventType, event_field
from ..models.directives import Directive
from ..models.perception import UnitAction
from ..models.world import Unit, WorldState
from ..utils.logging_setup import setup_logging
from .brain import UnitBrain
from .coordinator import StrategicCoordinator
from .token_tracker import TokenTracker

logger = logging.getLogger('rtscom.runtime.scheduler')

# Ticks
MESSAGE_CLEANUP_INTERVAL = 100


class AIScheduler:
    """
    Per-tick driver for all AI decision-making

    Args:
        event_bus: Shared event bus
        local_player_id: Player whose units follow coordinator directives
        agent_controller: Action source for unit brains
        coordinator: Strategic coordinator for the local player, or None to
            run every unit on brains
        units_config: Optional units configuration section
        communication: Message store; a fresh one is created when omitted
    """

    def __init__(
        self,
        event_bus: EventBus,
        local_player_id: str,
        agent_controller: AgentController,
        coordinator: Optional[StrategicCoordinator] = None,
        units_config: Optional[Dict[str, Any]] = None,
        communication: Optional[Communication] = None
    ):
        self.event_bus = event_bus
        self.local_player_id = local_player_id
        self.agent_controller = agent_controller
        self.coordinator = coordinator
        self.units_config = units_config or {}

        self.communication = communication or Communication(
            event_bus,
            retention_ticks=self.units_config.get('message_retention_ticks', MESSAGE_RETENTION_TICKS),
        )
        self.message_cleanup_interval = self.units_config.get('message_cleanup_interval', MESSAGE_CLEANUP_INTERVAL)
        self.communication_range = self.units_config.get('communication_range', COMMUNICATION_RANGE)
        self.last_cleanup_tick = 0

        self.world: Optional[WorldState] = None
        self.brains: Dict[str, UnitBrain] = {}
        self.in_flight = set()
        self.active_directives: Dict[str, Directive] = {}
        self._actions: List[Tuple[str, UnitAction]] = []
        self._tasks = set()

        self._unsubscribe = event_bus.on(GameEventType.UNIT_DESTROYED, self._on_unit_destroyed)

    def get_world(self) -> Optional[WorldState]:
        """World provider handed to the coordinator"""
        return self.world

    def _on_unit_destroyed(self, data: Any):
        unit_id = event_field(event_field(data, 'unit'), 'id') or event_field(data, 'unitId', 'unit_id')
        if not unit_id:
            return
        self.brains.pop(unit_id, None)
        self.in_flight.discard(unit_id)
        self.communication.forget_unit(unit_id)
        self.active_directives.pop(unit_id, None)

    def update(self, tick: int, world: WorldState):
        """
        Advance AI by one tick

        Must be called from inside a running event loop.
        """
        self.world = world
        loop = asyncio.get_running_loop()

        if self.coordinator is not None:
            self.coordinator.scan_for_discoveries(tick)
            self.coordinator.tick_directives(tick)

            if self.coordinator.should_evaluate(tick):
                task = loop.create_task(self.coordinator.evaluate(tick))
                task.add_done_callback(functools.partial(
                    self._on_evaluation_done, self.coordinator.evaluation_count))
                self._track(task, 'Coordinator evaluate()')

        self.active_directives = {}
        for unit in world.units:
            if not unit.is_alive():
                continue

            if self.coordinator is not None and unit.player_id == self.local_player_id:
                directive = self.coordinator.get_directive(unit.id)
                if directive is not None and not directive.completed:
                    self.active_directives[unit.id] = directive
                continue

            brain = self._get_or_create_brain(unit)
            if brain.should_think(tick) and unit.id not in self.in_flight:
                self._think_for_unit(unit, brain, world, tick, loop)

            pending = brain.get_pending_action()
            if pending is not None:
                if pending.type == 'communicate' and pending.message:
                    self.communication.broadcast_nearby(unit, pending.message, world, tick,
                                                        radius=self.communication_range)
                self._actions.append((unit.id, pending))

        if tick - self.last_cleanup_tick >= self.message_cleanup_interval:
            self.last_cleanup_tick = tick
            self.communication.cleanup_old_messages(tick - self.communication.retention_ticks)

    def drain_actions(self) -> List[Tuple[str, UnitAction]]:
        """Return and clear the (unit_id, action) pairs collected so far"""
        actions = self._actions
        self._actions = []
        return actions

    def get_active_directives(self) -> Dict[str, Directive]:
        """Local-player units holding a not-yet-completed directive as of the last update"""
        return dict(self.active_directives)

    async def wait_for_pending(self):
        """Wait until every scheduled evaluate/think task has finished"""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def dispose(self):
        """Unsubscribe everything and cancel outstanding tasks"""
        self._unsubscribe()
        if self.coordinator is not None:
            self.coordinator.dispose()
        for task in list(self._tasks):
            task.cancel()

    def _get_or_create_brain(self, unit: Unit) -> UnitBrain:
        brain = self.brains.get(unit.id)
        if brain is None:
            brain = UnitBrain(unit.id, unit.type, unit.player_id, self.agent_controller, self.units_config)
            self.brains[unit.id] = brain
        return brain

    def _think_for_unit(self, unit: Unit, brain: UnitBrain, world: WorldState, tick: int, loop):
        self.in_flight.add(unit.id)
        since_tick = max(0, tick - brain.think_interval)
        messages = self.communication.get_messages_for_unit(unit.id, since_tick)
        task = loop.create_task(brain.think(unit, world, tick, messages))
        task.add_done_callback(functools.partial(self._on_think_done, unit.id))
        self._track(task, 'think() for unit %s' % unit.id)

    def _on_think_done(self, unit_id: str, task: asyncio.Task):
        self.in_flight.discard(unit_id)

    def _on_evaluation_done(self, evaluation_number: int, task: asyncio.Task):
        if task.cancelled() and self.coordinator is not None:
            self.coordinator.abort_evaluation(evaluation_number)

    def _track(self, task: asyncio.Task, label: str):
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._on_task_done, label))

    def _on_task_done(self, label: str, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error('%s failed: %s', label, exc, exc_info=exc)


def create_scheduler(
    event_bus: EventBus,
    local_player_id: str,
    config: Optional[Dict[str, Any]] = None
) -> AIScheduler:
    """
    Build a fully wired scheduler from configuration

    Logging is set up from the logging section first. The decision source
    comes from the llm_providers list; with no usable provider the session
    runs on local defaults.

    Args:
        event_bus: Shared event bus
        local_player_id: Player the coordinator acts for
        config: Partial configuration, merged onto DEFAULT_CONFIG

    Returns:
        AIScheduler with coordinator and agent controller attached
    """
    config = merge_config(config)
    setup_logging(config['logging'])

    source = LLMProviderManager(config['ai'].get('llm_providers', [])).get_source()
    token_tracker = TokenTracker(config['logging'].get('log_dir'))
    agent_controller = AgentController(
        local_player_id,
        source=source,
        action_timeout=config['units'].get('action_timeout', 5.0),
    )

    scheduler = AIScheduler(event_bus, local_player_id, agent_controller, units_config=config['units'])
    scheduler.coordinator = StrategicCoordinator(
        local_player_id,
        event_bus,
        scheduler.get_world,
        source=source,
        config=config,
        token_tracker=token_tracker,
    )
    logger.info('AI scheduler created for player %s', local_player_id)
    return scheduler
