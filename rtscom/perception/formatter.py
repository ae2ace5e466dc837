"""
Perception formatter - serializes world knowledge into decision-source prompts

Two shapes are produced:
- the batch perception the coordinator sends once per evaluation, covering
  every owned unit, visible enemies, known resources and player orders
- the per-unit perception text sent to LLM-backed action sources
"""

from typing import Dict, List, Optional

from ..models.directives import Directive
from ..models.grid import position_to_label
from ..models.perception import UnitPerception
from ..models.world import WorldState
from .builder import visible_resource_tiles

DEFAULT_MAX_RESOURCE_ENTRIES = 10
UNIT_RECENT_EVENTS = 5


def format_batch_perception(
    world: WorldState,
    player_id: str,
    tick: int,
    reason: str,
    directives: Dict[str, Directive],
    standing_orders: Dict[str, str],
    current_command: Optional[str] = None,
    command_target_ids: Optional[List[str]] = None,
    max_resource_entries: int = DEFAULT_MAX_RESOURCE_ENTRIES
) -> str:
    """
    Build the coordinator's batch perception

    Args:
        world: Current world state
        player_id: Player the coordinator acts for
        tick: Current tick
        reason: Why this evaluation is running
        directives: Current directive store
        standing_orders: unit_id -> standing order text
        current_command: Fresh player command, if any
        command_target_ids: Units the fresh command was addressed to
        max_resource_entries: Cap on listed resource tiles

    Returns:
        Multi-line prompt text
    """
    lines = []
    w, h = world.width, world.height
    resources = world.resources_for_player(player_id)

    lines.append(
        f"Map: {w}x{h} (0-indexed: col 0-{w - 1}, row 0-{h - 1}). "
        f"Top-left=(0,0) Bottom-right=({w - 1},{h - 1}). Use these numbers for target col/row."
    )
    lines.append(
        f"Tick: {tick} | Minerals: {resources.minerals} | Energy: {resources.energy} "
        f"| Explored: {world.explored_percentage(player_id)}%"
    )
    lines.append(f"Trigger: {reason}")
    lines.append("")

    lines.append("UNITS:")
    owned = [u for u in world.units_for_player(player_id) if u.is_alive()]
    for unit in owned:
        directive = directives.get(unit.id)
        directive_str = f" [{directive.type.value}]" if directive and not directive.completed else " [idle]"
        standing = standing_orders.get(unit.id)
        order_str = f' ORDER="{standing}"' if standing else ""
        carrying = ""
        if unit.carrying_amount > 0 and unit.carrying_type is not None:
            carrying = f" carrying:{unit.carrying_type.value}({unit.carrying_amount})"
        lines.append(
            f"- {unit.id} {unit.type.value.upper()} @{position_to_label(unit.position)} "
            f"hp:{unit.health_percent}%{directive_str}{order_str}{carrying}"
        )
    lines.append("")

    enemies = [
        u for u in world.units
        if u.player_id != player_id and u.is_alive() and world.is_visible(player_id, u.position)
    ]
    if enemies:
        lines.append("ENEMIES:")
        for enemy in enemies:
            lines.append(f"- {enemy.type.value} @{position_to_label(enemy.position)} hp:{enemy.health_percent}%")
    else:
        lines.append("ENEMIES: none visible")
    lines.append("")

    resource_tiles = visible_resource_tiles(world, player_id)
    if resource_tiles:
        lines.append("RESOURCES:")
        summaries = [f"{position_to_label(pos)}({res.value})" for pos, res in resource_tiles[:max_resource_entries]]
        lines.append("- " + " ".join(summaries))
    else:
        lines.append("RESOURCES: none visible")
    lines.append("")

    buildings = world.buildings_for_player(player_id)
    if buildings:
        lines.append("BUILDINGS:")
        for building in buildings:
            constructing = ""
            if building.is_constructing:
                constructing = f" ({int(round(building.construction_progress * 100))}%)"
            lines.append(f"- {building.type.value}@{position_to_label(building.position)}{constructing}")
        lines.append("")

    if current_command:
        if command_target_ids:
            lines.append(f'NEW COMMAND (to {", ".join(command_target_ids)}): "{current_command}"')
            lines.append("Issue new directives for the commanded units. Do not change other units.")
        else:
            lines.append(f'NEW COMMAND (to all): "{current_command}"')
        lines.append("")

    ordered = [u for u in owned if u.id in standing_orders]
    if ordered:
        lines.append("STANDING ORDERS (these are player commands - always respect them):")
        for unit in ordered:
            lines.append(f'- {unit.id}: "{standing_orders[unit.id]}"')
        lines.append("Directives MUST align with the standing orders above. Do not override player intent.")
        lines.append("")

    return "\n".join(lines)


def format_unit_perception(perception: UnitPerception) -> str:
    """Human-readable prompt for a single unit's action request"""
    status = perception.status
    lines = []

    lines.append(f"You are a {status.type.value.upper()} unit at position {status.grid_label}.")
    lines.append(f"Health: {status.health:g}/{status.max_health} | Energy: {status.energy:g}/{status.max_energy}")

    if status.afflictions:
        afflictions = ", ".join(f"{a.type.value}({a.duration} ticks)" for a in status.afflictions)
        lines.append(f"Afflictions: {afflictions}")

    lines.append("")
    lines.append(f"Current command: {perception.current_command or 'None'}")
    lines.append("")

    if perception.visible_units:
        lines.append("Visible units:")
        for unit in perception.visible_units:
            relation = "friendly" if unit.is_friendly else "enemy"
            lines.append(
                f"  - {unit.type.value} at {unit.grid_label} ({relation}, {int(round(unit.health_percent * 100))}% hp)"
            )
    else:
        lines.append("Visible units: None")
    lines.append("")

    notable = [t for t in perception.visible_terrain if t.has_resource or not t.walkable]
    if notable:
        lines.append("Notable terrain:")
        for tile in notable:
            parts = [tile.type.value]
            if tile.has_resource and tile.resource_type is not None:
                parts.append(f"resource: {tile.resource_type.value}")
            if not tile.walkable:
                parts.append("impassable")
            lines.append(f"  - {tile.grid_label}: {', '.join(parts)}")
    else:
        lines.append("Notable terrain: None")
    lines.append("")

    if perception.nearby_messages:
        lines.append("Recent messages:")
        for msg in perception.nearby_messages:
            lines.append(f'  - From {msg.from_unit_id}: "{msg.content}"')
    else:
        lines.append("Recent messages: None")
    lines.append("")

    recent = perception.recent_audit_log[-UNIT_RECENT_EVENTS:]
    if recent:
        lines.append("Recent events:")
        for entry in recent:
            lines.append(f"  - [tick {entry.tick}] {entry.type}: {entry.message}")
    else:
        lines.append("Recent events: None")
    lines.append("")

    lines.append("What action do you take?")
    return "\n".join(lines)
