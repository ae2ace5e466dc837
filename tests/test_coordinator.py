"""Tests for the strategic coordinator: gating, evaluation, validation and fallback."""
import asyncio

import pytest

from conftest import (
    ENEMY, PLAYER, ScriptedSource, SlowSource, add_resource, add_unit, make_world, server_error, settle,
)
from rtscom.ai.errors import DecisionSourceUnavailable, MalformedResponseError
from rtscom.engine.events import GameEventType
from rtscom.models.directives import DirectiveType
from rtscom.models.grid import GridPosition
from rtscom.models.world import BuildingType, FogState, UnitType
from rtscom.runtime.coordinator import StrategicCoordinator
from rtscom.runtime.token_tracker import TokenTracker


def gather(unit_id="U1", **extra):
    entry = {"unitId": unit_id, "type": "gather_resources", "reasoning": "Minerals nearby"}
    entry.update(extra)
    return entry


@pytest.fixture
def squad(world):
    add_unit(world, "U1", UnitType.ENGINEER, PLAYER, 5, 5)
    add_unit(world, "U2", UnitType.SOLDIER, PLAYER, 6, 5)
    return world


# ---- Gating ----

def test_idle_before_first_command(make_coordinator, bus, squad):
    coordinator = make_coordinator(ScriptedSource())
    bus.emit(GameEventType.UNIT_DESTROYED, {"unit": {"player_id": PLAYER, "type": "soldier"}})
    bus.emit(GameEventType.BUILDING_COMPLETED, {"playerId": PLAYER, "buildingType": "barracks"})

    assert coordinator.pending_world_change
    assert not coordinator.should_evaluate(5000)
    assert not coordinator.should_evaluate(100000)


def test_player_command_uses_short_gap(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource())
    command("gather minerals", ["U1"])

    assert not coordinator.should_evaluate(29)
    assert coordinator.should_evaluate(30)


def test_player_command_event_records_transcript(make_coordinator, bus, squad):
    coordinator = make_coordinator(ScriptedSource())
    bus.emit(GameEventType.PLAYER_COMMAND, {"transcript": "scout the north"})

    assert coordinator.current_player_command == "scout the north"
    assert coordinator.should_evaluate(30)
    assert coordinator.command_target_unit_ids == []


def test_non_voice_unit_command_is_ignored(make_coordinator, bus, squad):
    coordinator = make_coordinator(ScriptedSource())
    bus.emit(GameEventType.UNIT_COMMAND, {"type": "move", "payload": {"transcript": "go"}, "targetUnitIds": ["U1"]})

    assert not coordinator.has_received_command
    assert coordinator.standing_orders == {}


@pytest.mark.asyncio
async def test_world_change_respects_min_gap(make_coordinator, bus, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": []}))
    command("hold", ["U1"])
    await coordinator.evaluate(30)

    bus.emit(GameEventType.BUILDING_COMPLETED, {"playerId": PLAYER, "buildingType": "barracks"})
    assert not coordinator.should_evaluate(229)
    assert coordinator.should_evaluate(230)


@pytest.mark.asyncio
async def test_heartbeat_after_first_command(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": []}))
    command("hold", ["U1"])
    await coordinator.evaluate(30)

    assert not coordinator.should_evaluate(500)
    assert not coordinator.should_evaluate(1229)
    assert coordinator.should_evaluate(1230)


@pytest.mark.asyncio
async def test_single_evaluation_in_flight(make_coordinator, command, squad):
    source = SlowSource({"directives": [gather()]})
    coordinator = make_coordinator(source)
    command("gather minerals", ["U1"])

    task = asyncio.create_task(coordinator.evaluate(30))
    # Closed before the task has even started running
    assert coordinator.evaluating
    assert not coordinator.should_evaluate(10000)

    await settle()
    assert source.started == 1

    command("gather more", ["U1"])
    assert not coordinator.should_evaluate(10000)

    source.release()
    await task

    assert not coordinator.evaluating
    assert source.started == 1
    assert coordinator.should_evaluate(10000)


# ---- Evaluation outcomes ----

@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    {"directives": [gather()]},
    server_error(500),
    MalformedResponseError("not json"),
    {"orders": []},
    RuntimeError("boom"),
])
async def test_evaluate_clears_command_state_on_every_path(make_coordinator, bus, command, squad, response):
    coordinator = make_coordinator(ScriptedSource(response))
    command("gather minerals", ["U1"])
    bus.emit(GameEventType.BUILDING_COMPLETED, {"playerId": PLAYER, "buildingType": "factory"})

    await coordinator.evaluate(30)

    assert coordinator.current_player_command is None
    assert coordinator.command_target_unit_ids == []
    assert coordinator.trigger_reason is None
    assert not coordinator.evaluating
    assert not coordinator.pending_player_command
    assert not coordinator.pending_world_change
    assert coordinator.last_eval_tick == 30


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    server_error(500),
    MalformedResponseError("invalid JSON"),
    "not-an-object",
])
async def test_failure_keeps_existing_directives_and_fills_defaults(make_coordinator, command, squad, failure):
    add_unit(squad, "U3", UnitType.SCOUT, PLAYER, 1, 1, health=0)
    add_unit(squad, "E1", UnitType.SOLDIER, ENEMY, 15, 15)
    source = ScriptedSource({"directives": [gather(target={"col": 7, "row": 7})]}, failure)
    coordinator = make_coordinator(source)
    command("gather minerals", ["U1"])
    await coordinator.evaluate(30)
    existing = coordinator.get_directive("U1")

    await coordinator.evaluate(300)

    assert coordinator.get_directive("U1") is existing
    idle = coordinator.get_directive("U2")
    assert idle.type == DirectiveType.IDLE
    assert idle.priority == 1
    assert idle.reasoning == "Awaiting orders"
    assert coordinator.get_directive("U3") is None
    assert coordinator.get_directive("E1") is None


@pytest.mark.asyncio
async def test_timeout_falls_back_to_defaults(make_coordinator, command, squad):
    source = SlowSource({"directives": [gather()]})
    coordinator = make_coordinator(source, config={"coordinator": {"evaluation_timeout": 0.05}})
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    assert not coordinator.evaluating
    assert coordinator.is_llm_enabled()
    assert coordinator.get_directive("U1").type == DirectiveType.IDLE
    assert coordinator.get_directive("U2").type == DirectiveType.IDLE


@pytest.mark.asyncio
async def test_service_unavailable_disables_source(make_coordinator, command, squad):
    source = ScriptedSource(DecisionSourceUnavailable())
    coordinator = make_coordinator(source)
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)
    assert not coordinator.is_llm_enabled()
    assert len(source.prompts) == 1

    command("attack", ["U2"])
    assert coordinator.should_evaluate(60)
    await coordinator.evaluate(60)

    assert len(source.prompts) == 1
    assert coordinator.get_directive("U2").type == DirectiveType.IDLE


@pytest.mark.asyncio
async def test_other_errors_keep_source_enabled(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource(server_error(429)))
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    assert coordinator.is_llm_enabled()


@pytest.mark.asyncio
async def test_no_source_runs_on_defaults(make_coordinator, command, squad):
    coordinator = make_coordinator(None)
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    assert not coordinator.is_llm_enabled()
    assert coordinator.get_directive("U1").type == DirectiveType.IDLE


# ---- Directive application ----

@pytest.mark.asyncio
async def test_standing_order_gate(make_coordinator, command, squad):
    source = ScriptedSource({"directives": [
        gather("U1"),
        {"unitId": "U2", "type": "explore_area", "target": {"col": 1, "row": 1}},
    ]})
    coordinator = make_coordinator(source)
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    assert coordinator.get_directive("U1").type == DirectiveType.GATHER_RESOURCES
    u2 = coordinator.get_directive("U2")
    assert u2.type == DirectiveType.IDLE
    assert u2.reasoning == "Awaiting orders"


@pytest.mark.asyncio
async def test_rejection_removes_prior_directive(make_coordinator, command, squad):
    source = ScriptedSource(
        {"directives": [{"unitId": "U2", "type": "idle", "reasoning": "Resting"}]},
        {"directives": [{"unitId": "U2", "type": "attack_move"}]},
    )
    coordinator = make_coordinator(source)
    command("status report")
    await coordinator.evaluate(30)
    first = coordinator.get_directive("U2")
    assert first.reasoning == "Resting"

    # Replaced by a fresh idle default once the rejection deleted it
    await coordinator.evaluate(300)
    second = coordinator.get_directive("U2")
    assert second is not first
    assert second.reasoning == "Awaiting orders"
    assert second.created_at_tick == 300


@pytest.mark.asyncio
async def test_idle_proposal_allowed_without_standing_order(make_coordinator, command, squad):
    source = ScriptedSource({"directives": [{"unitId": "U2", "type": "IDLE", "reasoning": "Nothing to do"}]})
    coordinator = make_coordinator(source)
    command("status report")

    await coordinator.evaluate(30)

    directive = coordinator.get_directive("U2")
    assert directive.reasoning == "Nothing to do"
    assert directive.priority == 3
    assert squad.get_unit("U2").last_thought == "[Directive] idle: Nothing to do"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw,expected", [
    ("Gather Resources", DirectiveType.GATHER_RESOURCES),
    ("attack-move", DirectiveType.ATTACK_MOVE),
    ("PATROL_AREA", DirectiveType.PATROL_AREA),
])
async def test_directive_type_normalization(make_coordinator, command, squad, raw, expected):
    coordinator = make_coordinator(ScriptedSource({"directives": [{"unitId": "U1", "type": raw}]}))
    command("do it", ["U1"])

    await coordinator.evaluate(30)

    assert coordinator.get_directive("U1").type == expected


@pytest.mark.asyncio
async def test_unknown_directive_type_rejected(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": [{"unitId": "U1", "type": "dance"}]}))
    command("dance", ["U1"])

    await coordinator.evaluate(30)

    assert coordinator.get_directive("U1").type == DirectiveType.IDLE
    assert coordinator.get_directive("U1").reasoning == "Awaiting orders"


@pytest.mark.asyncio
@pytest.mark.parametrize("target,expected", [
    ({"col": -5, "row": 9999}, GridPosition(0, 19)),
    ({"col": 3.5, "row": 2.4}, GridPosition(4, 2)),
    ({"col": "12", "row": "7"}, GridPosition(12, 7)),
])
async def test_target_clamped_into_map(make_coordinator, command, squad, target, expected):
    coordinator = make_coordinator(ScriptedSource({"directives": [gather(target=target)]}))
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    assert coordinator.get_directive("U1").target_position == expected


@pytest.mark.asyncio
async def test_non_finite_numbers_are_dropped_not_fatal(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": [
        gather(target={"col": "inf", "row": 1}, priority=float("inf")),
        {"unitId": "U2", "type": "idle", "priority": "nan"},
    ]}))
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    directive = coordinator.get_directive("U1")
    assert directive.type == DirectiveType.GATHER_RESOURCES
    assert directive.target_position is None
    assert directive.priority == 3
    assert coordinator.get_directive("U2").type == DirectiveType.IDLE
    assert not coordinator.evaluating


@pytest.mark.asyncio
async def test_validation_error_skips_only_that_proposal(make_coordinator, command, squad, monkeypatch):
    coordinator = make_coordinator(ScriptedSource({"directives": [gather("U1"), gather("U2")]}))
    command("gather minerals", ["U1", "U2"])
    validate = coordinator.validator.validate

    def flaky_validate(proposal, *args):
        if proposal.unit_id == "U1":
            raise OverflowError("cannot convert float infinity to integer")
        return validate(proposal, *args)

    monkeypatch.setattr(coordinator.validator, "validate", flaky_validate)

    await coordinator.evaluate(30)

    assert coordinator.get_directive("U1").type == DirectiveType.IDLE
    assert coordinator.get_directive("U2").type == DirectiveType.GATHER_RESOURCES


@pytest.mark.asyncio
async def test_apply_failure_falls_back_to_defaults(make_coordinator, command, squad, monkeypatch):
    coordinator = make_coordinator(ScriptedSource({"directives": [gather()]}))
    command("gather minerals", ["U1"])

    def broken_apply(proposals, tick, world=None):
        raise ValueError("cannot convert float NaN to integer")

    monkeypatch.setattr(coordinator, "apply_directives", broken_apply)

    await coordinator.evaluate(30)

    assert coordinator.get_directive("U1").type == DirectiveType.IDLE
    assert coordinator.get_directive("U2").type == DirectiveType.IDLE
    assert not coordinator.evaluating
    assert coordinator.current_player_command is None


@pytest.mark.asyncio
async def test_cancelled_before_start_can_be_released(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": [gather()]}))
    command("gather minerals", ["U1"])

    task = asyncio.create_task(coordinator.evaluate(30))
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert coordinator.evaluating

    coordinator.abort_evaluation()

    assert not coordinator.evaluating
    assert coordinator.current_player_command is None
    assert coordinator.command_target_unit_ids == []
    assert coordinator.trigger_reason is None
    command("gather again", ["U1"])
    assert coordinator.should_evaluate(60)


@pytest.mark.asyncio
async def test_stale_abort_leaves_newer_evaluation_running(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": [gather()]}))
    command("gather minerals", ["U1"])
    await coordinator.evaluate(30)
    command("gather more", ["U1"])
    task = asyncio.create_task(coordinator.evaluate(60))

    coordinator.abort_evaluation(1)

    assert coordinator.evaluating
    assert coordinator.current_player_command == "gather more"
    await task
    assert not coordinator.evaluating


@pytest.mark.asyncio
async def test_proposals_for_foreign_dead_or_missing_units_skipped(make_coordinator, command, squad):
    add_unit(squad, "E1", UnitType.SOLDIER, ENEMY, 10, 10)
    add_unit(squad, "U3", UnitType.SCOUT, PLAYER, 2, 2, health=0)
    coordinator = make_coordinator(ScriptedSource({"directives": [
        {"unitId": "E1", "type": "retreat"},
        {"unitId": "U3", "type": "idle"},
        {"unitId": "U99", "type": "idle"},
    ]}))
    command("everyone retreat", ["E1", "U3", "U99"])

    await coordinator.evaluate(30)

    assert coordinator.get_directive("E1") is None
    assert coordinator.get_directive("U3") is None
    assert coordinator.get_directive("U99") is None


@pytest.mark.asyncio
async def test_accepted_directive_fields(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": [
        gather(target={"col": 7, "row": 7}, resourceType="minerals", priority=5),
    ]}))
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    directive = coordinator.get_directive("U1")
    assert directive.resource_type == "minerals"
    assert directive.priority == 5
    assert directive.created_at_tick == 30
    assert directive.ttl == 1200
    assert not directive.completed
    assert squad.get_unit("U1").last_thought == "[Directive] gather_resources: Minerals nearby"


@pytest.mark.asyncio
async def test_directives_never_expire(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource({"directives": [gather()]}))
    command("gather minerals", ["U1"])
    await coordinator.evaluate(30)

    coordinator.tick_directives(1_000_000)

    assert coordinator.get_directive("U1").type == DirectiveType.GATHER_RESOURCES


@pytest.mark.asyncio
async def test_token_usage_recorded(make_coordinator, command, squad):
    tracker = TokenTracker()
    payload = {"directives": [gather()], "__token_usage": {"input_tokens": 120, "output_tokens": 30}}
    coordinator = make_coordinator(ScriptedSource(payload), token_tracker=tracker)
    command("gather minerals", ["U1"])

    await coordinator.evaluate(30)

    stats = tracker.get_stats()
    assert stats["total"]["calls"] == 1
    assert stats["total"]["total"] == 150
    assert stats["last_call"]["provider"] == "scripted"


# ---- Triggers ----

def test_unit_destroyed_trigger(make_coordinator, bus, squad):
    coordinator = make_coordinator(ScriptedSource())
    bus.emit(GameEventType.UNIT_DESTROYED, {"unit": {"player_id": ENEMY, "type": "scout"}})
    assert not coordinator.pending_world_change

    bus.emit(GameEventType.UNIT_DESTROYED, squad.get_unit("U2"))
    assert coordinator.pending_world_change
    assert coordinator.trigger_reason == "Our soldier was destroyed"


def test_building_completed_trigger(make_coordinator, bus, squad):
    coordinator = make_coordinator(ScriptedSource())
    bus.emit(GameEventType.BUILDING_COMPLETED, {"playerId": ENEMY, "buildingType": "base"})
    assert not coordinator.pending_world_change

    bus.emit(GameEventType.BUILDING_COMPLETED, {"player_id": PLAYER, "building_type": BuildingType.BARRACKS})
    assert coordinator.trigger_reason == "barracks completed"


def test_scan_reports_new_enemies_once(make_coordinator, squad):
    add_unit(squad, "E1", UnitType.SOLDIER, ENEMY, 5, 5)
    coordinator = make_coordinator(ScriptedSource())

    coordinator.scan_for_discoveries(10)
    assert not coordinator.pending_world_change

    coordinator.scan_for_discoveries(20)
    assert coordinator.trigger_reason == "New enemies discovered: soldier at F6"
    assert coordinator.known_enemy_ids == {"E1"}

    coordinator.pending_world_change = False
    coordinator.trigger_reason = None
    coordinator.scan_for_discoveries(40)
    assert not coordinator.pending_world_change


def test_scan_ignores_hidden_enemies(make_coordinator, bus):
    world = make_world(fog=FogState.EXPLORED)
    add_unit(world, "E1", UnitType.SCOUT, ENEMY, 3, 3)
    coordinator = StrategicCoordinator(PLAYER, bus, lambda: world, source=ScriptedSource())

    coordinator.scan_for_discoveries(20)

    assert coordinator.known_enemy_ids == set()
    assert not coordinator.pending_world_change


def test_resource_discoveries_are_batched(make_coordinator, bus):
    world = make_world(fog=FogState.UNEXPLORED)
    for col in range(3):
        add_resource(world, col, 0)
    coordinator = StrategicCoordinator(PLAYER, bus, lambda: world, source=ScriptedSource())

    world.fog[PLAYER][0][0] = FogState.EXPLORED
    world.fog[PLAYER][0][1] = FogState.VISIBLE
    coordinator.scan_for_discoveries(20)
    assert not coordinator.pending_world_change
    assert coordinator.known_resource_keys == {"0,0", "1,0"}

    add_resource(world, 3, 0)
    add_resource(world, 4, 0)
    for col in range(2, 5):
        world.fog[PLAYER][0][col] = FogState.VISIBLE
    coordinator.scan_for_discoveries(40)

    assert coordinator.pending_world_change
    assert coordinator.trigger_reason == (
        "New resources discovered: minerals at C1, minerals at D1, minerals at E1"
    )


def test_resource_discovery_does_not_override_pending_change(make_coordinator, bus):
    world = make_world(fog=FogState.VISIBLE)
    for col in range(4):
        add_resource(world, col, 0)
    coordinator = StrategicCoordinator(PLAYER, bus, lambda: world, source=ScriptedSource())
    bus.emit(GameEventType.BUILDING_COMPLETED, {"playerId": PLAYER, "buildingType": "factory"})

    coordinator.scan_for_discoveries(20)

    assert coordinator.trigger_reason == "factory completed"
    assert len(coordinator.known_resource_keys) == 4


def test_depleted_resources_not_discovered(make_coordinator, bus):
    world = make_world()
    for col in range(3):
        add_resource(world, col, 0, amount=0)
    coordinator = StrategicCoordinator(PLAYER, bus, lambda: world, source=ScriptedSource())

    coordinator.scan_for_discoveries(20)

    assert coordinator.known_resource_keys == set()


def test_dispose_unsubscribes(make_coordinator, command, squad):
    coordinator = make_coordinator(ScriptedSource())
    coordinator.dispose()

    command("gather minerals", ["U1"])

    assert not coordinator.has_received_command


# ---- End to end ----

@pytest.mark.asyncio
async def test_gather_minerals_scenario(make_coordinator, command, squad):
    add_resource(squad, 7, 7)
    source = ScriptedSource({"directives": [
        gather("U1", target={"col": 7, "row": 7}, resourceType="minerals"),
        {"unitId": "U2", "type": "attack_move", "target": {"col": 10, "row": 10}},
    ]})
    coordinator = make_coordinator(source)

    assert not coordinator.should_evaluate(10)
    command("gather minerals", ["U1"])
    assert coordinator.standing_orders == {"U1": "gather minerals"}
    assert coordinator.should_evaluate(30)

    await coordinator.evaluate(30)

    prompt = source.prompts[0]
    assert 'Trigger: Player command: "gather minerals"' in prompt
    assert 'NEW COMMAND (to U1): "gather minerals"' in prompt
    assert '- U1 ENGINEER @F6 hp:100% [idle] ORDER="gather minerals"' in prompt
    assert '- U1: "gather minerals"' in prompt

    u1 = coordinator.get_directive("U1")
    assert u1.type == DirectiveType.GATHER_RESOURCES
    assert u1.target_position == GridPosition(7, 7)
    assert coordinator.get_directive("U2").type == DirectiveType.IDLE

    # Standing order survives and shows up in the next heartbeat prompt
    assert coordinator.should_evaluate(1230)
    await coordinator.evaluate(1230)
    assert "Trigger: Periodic heartbeat" in source.prompts[1]
    assert '- U1 ENGINEER @F6 hp:100% [gather_resources] ORDER="gather minerals"' in source.prompts[1]
    assert "NEW COMMAND" not in source.prompts[1]
