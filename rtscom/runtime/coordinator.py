"""
Strategic coordinator - event-driven batch decision loop for one player

The decision source is consulted only when the situation meaningfully
changes, in descending priority:
  1. The player issues a command
  2. One of our units is destroyed
  3. One of our buildings finishes construction
  4. A new enemy comes into vision for the first time
  5. A batch of new resource tiles is discovered
plus a periodic heartbeat as a safety net. Every response is validated
before it reaches the directive store, and every failure ends in safe
idle defaults.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..ai.directive_parser import DirectiveParser
from ..ai.errors import STATUS_SERVICE_UNAVAILABLE, DecisionSourceError
from ..ai.sandbox import DirectiveValidator
from ..engine.events import EventBus, GameEventType, event_field
from ..models.directives import IDLE_PRIORITY, Directive, DirectiveProposal, DirectiveType
from ..models.grid import GridPosition, position_to_label
from ..models.world import FogState, Unit, WorldState
from ..perception.formatter import format_batch_perception
from .token_tracker import TokenTracker

logger = logging.getLogger('rtscom.runtime.coordinator')

# Ticks (10 per second)
HEARTBEAT_INTERVAL = 1200
MIN_EVALUATION_GAP = 200
PLAYER_COMMAND_GAP = 30
DEFAULT_DIRECTIVE_TTL = 1200
WORLD_SCAN_INTERVAL = 20
RESOURCE_DISCOVERY_THRESHOLD = 3
MAX_RESOURCE_ENTRIES = 10

# Seconds
EVALUATION_TIMEOUT = 10.0

DEFAULT_REASONING = "Awaiting orders"


def _enum_value(value: Any) -> Any:
    return getattr(value, 'value', value)


class StrategicCoordinator:
    """
    Per-player coordinator owning the directive store

    Args:
        player_id: Player this coordinator acts for
        event_bus: Bus to subscribe to
        world_provider: Callable returning the current WorldState (or None)
        source: Decision source with async generate_directives(perception),
            or None to run on defaults only
        config: Optional full configuration (coordinator/safety sections used)
        token_tracker: Optional tracker fed with per-call token usage
    """

    def __init__(
        self,
        player_id: str,
        event_bus: EventBus,
        world_provider: Callable[[], Optional[WorldState]],
        source=None,
        config: Optional[Dict[str, Any]] = None,
        token_tracker: Optional[TokenTracker] = None
    ):
        config = config or {}
        settings = config.get('coordinator', {})

        self.player_id = player_id
        self.event_bus = event_bus
        self.world_provider = world_provider
        self.source = source
        self.token_tracker = token_tracker

        self.heartbeat_interval = settings.get('heartbeat_interval', HEARTBEAT_INTERVAL)
        self.min_evaluation_gap = settings.get('min_evaluation_gap', MIN_EVALUATION_GAP)
        self.player_command_gap = settings.get('player_command_gap', PLAYER_COMMAND_GAP)
        self.default_directive_ttl = settings.get('default_directive_ttl', DEFAULT_DIRECTIVE_TTL)
        self.world_scan_interval = settings.get('world_scan_interval', WORLD_SCAN_INTERVAL)
        self.resource_discovery_threshold = settings.get('resource_discovery_threshold',
                                                         RESOURCE_DISCOVERY_THRESHOLD)
        self.max_resource_entries = settings.get('max_resource_entries', MAX_RESOURCE_ENTRIES)
        self.evaluation_timeout = settings.get('evaluation_timeout', EVALUATION_TIMEOUT)

        self.parser = DirectiveParser()
        self.validator = DirectiveValidator(config.get('safety', {}), default_ttl=self.default_directive_ttl)

        self.directives: Dict[str, Directive] = {}
        self.last_eval_tick = 0
        self.evaluating = False
        self.llm_enabled = source is not None
        self.evaluation_count = 0

        # Trigger state, reset every evaluation
        self.pending_player_command = False
        self.pending_world_change = False
        self.current_player_command: Optional[str] = None
        self.command_target_unit_ids: List[str] = []
        self.has_received_command = False
        self.trigger_reason: Optional[str] = None

        # Player orders per unit; survive evaluations, replaced only by a newer order
        self.standing_orders: Dict[str, str] = {}

        # World knowledge for diffing; grows monotonically
        self.known_enemy_ids = set()
        self.known_resource_keys = set()
        self.last_world_scan_tick = 0

        self._unsubscribers = [
            event_bus.on(GameEventType.PLAYER_COMMAND, self._on_player_command),
            event_bus.on(GameEventType.UNIT_COMMAND, self._on_unit_command),
            event_bus.on(GameEventType.UNIT_DESTROYED, self._on_unit_destroyed),
            event_bus.on(GameEventType.BUILDING_COMPLETED, self._on_building_completed),
        ]

        logger.info('Strategic coordinator initialized for player %s (LLM: %s)',
                    player_id, 'enabled' if self.llm_enabled else 'disabled')

    # ---- Event handlers ----

    def _on_player_command(self, data: Any):
        self.pending_player_command = True
        self.has_received_command = True
        transcript = event_field(data, 'transcript')
        if transcript:
            self.current_player_command = transcript
        logger.info('Player command received: %s', transcript)

    def _on_unit_command(self, data: Any):
        if event_field(data, 'type') != 'voice':
            return
        transcript = event_field(event_field(data, 'payload'), 'transcript')
        if not transcript:
            return

        self.pending_player_command = True
        self.has_received_command = True
        self.current_player_command = transcript
        target_ids = event_field(data, 'targetUnitIds', 'target_unit_ids')
        self.command_target_unit_ids = list(target_ids) if isinstance(target_ids, (list, tuple)) else []

        for unit_id in self.command_target_unit_ids:
            self.standing_orders[unit_id] = transcript
        logger.info('Unit command received for %s: %s', self.command_target_unit_ids or 'all', transcript)

    def _on_unit_destroyed(self, data: Any):
        unit = event_field(data, 'unit', default=data)
        if str(event_field(unit, 'player_id', 'playerId', default='')) != self.player_id:
            return
        self.pending_world_change = True
        self.trigger_reason = f"Our {_enum_value(event_field(unit, 'type', default='unit'))} was destroyed"
        logger.info(self.trigger_reason)

    def _on_building_completed(self, data: Any):
        if str(event_field(data, 'player_id', 'playerId', default='')) != self.player_id:
            return
        self.pending_world_change = True
        building_type = _enum_value(event_field(data, 'building_type', 'buildingType', default='Building'))
        self.trigger_reason = f"{building_type} completed"
        logger.info(self.trigger_reason)

    # ---- Public API ----

    def should_evaluate(self, tick: int) -> bool:
        """Whether an evaluation may start this tick"""
        if self.evaluating:
            return False

        gap = tick - self.last_eval_tick

        # Player commands use the shorter gap
        if self.pending_player_command:
            return gap >= self.player_command_gap

        # Until the player speaks, nothing else wakes the coordinator
        if not self.has_received_command:
            return False

        if gap < self.min_evaluation_gap:
            return False

        if self.pending_world_change:
            return True

        return gap >= self.heartbeat_interval

    def scan_for_discoveries(self, tick: int):
        """
        Diff current vision against known enemies and resources

        Throttled to once per world_scan_interval ticks. New enemies always
        raise a world change; new resources only in batches and only when
        nothing else is pending.
        """
        if tick - self.last_world_scan_tick < self.world_scan_interval:
            return
        self.last_world_scan_tick = tick

        world = self.world_provider()
        if world is None:
            return

        new_enemies = []
        for unit in world.units:
            if unit.player_id == self.player_id or not unit.is_alive():
                continue
            if unit.id in self.known_enemy_ids:
                continue
            if world.is_visible(self.player_id, unit.position):
                self.known_enemy_ids.add(unit.id)
                new_enemies.append(f"{unit.type.value} at {position_to_label(unit.position)}")

        new_resources = []
        grid = world.fog_grid(self.player_id)
        if grid:
            for row, cells in enumerate(grid):
                for col, cell in enumerate(cells):
                    if cell == FogState.UNEXPLORED:
                        continue
                    key = f"{col},{row}"
                    if key in self.known_resource_keys:
                        continue
                    pos = GridPosition(col=col, row=row)
                    resource = world.resource_at(pos)
                    if resource is not None:
                        self.known_resource_keys.add(key)
                        new_resources.append(f"{resource.value} at {position_to_label(pos)}")

        if new_enemies:
            self.pending_world_change = True
            self.trigger_reason = f"New enemies discovered: {', '.join(new_enemies)}"
            logger.info(self.trigger_reason)
        elif (new_resources and not self.pending_world_change
              and len(new_resources) >= self.resource_discovery_threshold):
            self.pending_world_change = True
            self.trigger_reason = f"New resources discovered: {', '.join(new_resources[:3])}"
            logger.info(self.trigger_reason)

    def evaluate(self, tick: int) -> Awaitable[None]:
        """
        Start one evaluation cycle

        Trigger state is consumed and the in-flight flag set at call time,
        so a second should_evaluate() on the same tick is already closed.
        The returned coroutine must be awaited or scheduled as a task.

        The coroutine never raises for decision-source failures: timeouts,
        error statuses, malformed payloads and unexpected errors all end in
        default assignment. Only cancellation propagates.
        """
        self.evaluating = True
        self.pending_player_command = False
        self.pending_world_change = False
        self.last_eval_tick = tick
        self.evaluation_count += 1

        if self.current_player_command:
            reason = f'Player command: "{self.current_player_command}"'
        else:
            reason = self.trigger_reason or 'Periodic heartbeat'

        return self._run_evaluation(tick, reason)

    async def _run_evaluation(self, tick: int, reason: str):
        try:
            world = self.world_provider()
            if world is None:
                logger.warning('Evaluation at tick %d skipped - no world state', tick)
                return

            if not self.llm_enabled:
                logger.info('Evaluation #%d (%s): decision source disabled, assigning defaults',
                            self.evaluation_count, reason)
                self.assign_default_directives(tick, world)
                return

            prompt = format_batch_perception(
                world,
                self.player_id,
                tick,
                reason,
                self.directives,
                self.standing_orders,
                current_command=self.current_player_command,
                command_target_ids=self.command_target_unit_ids,
                max_resource_entries=self.max_resource_entries,
            )
            logger.info('Evaluation #%d at tick %d (%s), prompt %d chars',
                        self.evaluation_count, tick, reason, len(prompt))
            logger.debug('Batch perception:\n%s', prompt)

            try:
                payload = await asyncio.wait_for(
                    self.source.generate_directives(prompt),
                    timeout=self.evaluation_timeout,
                )
                proposals = self.parser.parse_directives(payload)
            except asyncio.TimeoutError:
                logger.warning('Decision source timed out after %.1fs - using default directives',
                               self.evaluation_timeout)
                self.assign_default_directives(tick)
                return
            except DecisionSourceError as e:
                if e.status == STATUS_SERVICE_UNAVAILABLE:
                    self.llm_enabled = False
                    logger.warning('LLM not configured, using default directives for the rest of the session: %s', e)
                else:
                    logger.warning('Decision source call failed (%s) - using default directives', e)
                self.assign_default_directives(tick)
                return
            except Exception:
                logger.exception('Unexpected error during evaluation - using default directives')
                self.assign_default_directives(tick)
                return

            self._record_token_usage(payload)
            try:
                self.apply_directives(proposals, tick)
            except Exception:
                logger.exception('Failed to apply directives - using default directives')
                self.assign_default_directives(tick)

        finally:
            self._reset_evaluation_state()

    def abort_evaluation(self, evaluation_number: Optional[int] = None):
        """
        Release an evaluation whose task was cancelled

        A task cancelled before its first step never enters the coroutine,
        so the in-flight flag set by evaluate() has to be cleared here.
        With evaluation_number given, a newer evaluation is left alone.
        """
        if evaluation_number is not None and evaluation_number != self.evaluation_count:
            return
        if self.evaluating:
            logger.info('Evaluation #%d cancelled', self.evaluation_count)
        self._reset_evaluation_state()

    def _reset_evaluation_state(self):
        self.evaluating = False
        self.current_player_command = None
        self.command_target_unit_ids = []
        self.trigger_reason = None

    def apply_directives(self, proposals: List[DirectiveProposal], tick: int, world: Optional[WorldState] = None):
        """Validate proposals into the directive store, then idle-fill the rest"""
        world = world or self.world_provider()
        if world is None:
            return

        accepted = 0
        for proposal in proposals:
            try:
                result = self.validator.validate(proposal, world, self.player_id, self.standing_orders, tick)
            except Exception:
                logger.exception('Skipping %s for %s - validation failed', proposal.type, proposal.unit_id)
                continue
            if result.revoke:
                self.directives.pop(proposal.unit_id, None)
                logger.info('Rejected %s for %s (%s)', proposal.type, proposal.unit_id, result.reason)
            if not result.allowed:
                continue

            directive = result.directive
            self.directives[directive.unit_id] = directive
            accepted += 1

            thought = f"[Directive] {directive.type.value}"
            if directive.reasoning:
                thought += f": {directive.reasoning}"
            unit = world.get_unit(directive.unit_id)
            if unit is not None:
                unit.last_thought = thought
            logger.info('%s -> %s', directive.unit_id, thought)

        logger.info('Applied %d of %d proposed directives', accepted, len(proposals))
        self.assign_default_directives(tick, world)

    def assign_default_directives(self, tick: int, world: Optional[WorldState] = None):
        """Give every live owned unit without a directive an idle one"""
        world = world or self.world_provider()
        if world is None:
            return
        for unit in world.units_for_player(self.player_id):
            if unit.is_alive() and unit.id not in self.directives:
                self._assign_default_for_unit(unit, tick)

    def _assign_default_for_unit(self, unit: Unit, tick: int):
        self.directives[unit.id] = Directive(
            unit_id=unit.id,
            type=DirectiveType.IDLE,
            created_at_tick=tick,
            ttl=self.default_directive_ttl,
            priority=IDLE_PRIORITY,
            reasoning=DEFAULT_REASONING,
        )
        unit.last_thought = DEFAULT_REASONING

    def get_directive(self, unit_id: str) -> Optional[Directive]:
        return self.directives.get(unit_id)

    def get_standing_order(self, unit_id: str) -> Optional[str]:
        return self.standing_orders.get(unit_id)

    def tick_directives(self, tick: int):
        """
        Directives have no time-based expiry

        They are replaced only when a new evaluation issues fresh ones;
        ttl is recorded for observability only.
        """

    def is_llm_enabled(self) -> bool:
        return self.llm_enabled

    def dispose(self):
        """Unsubscribe from the event bus"""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _record_token_usage(self, payload: Any):
        if self.token_tracker is None or not isinstance(payload, dict):
            return
        usage = payload.get('__token_usage') or {}
        if not usage:
            return
        provider = getattr(self.source, 'provider_name', 'unknown')
        self.token_tracker.record_call(usage.get('input_tokens', 0), usage.get('output_tokens', 0), provider)
