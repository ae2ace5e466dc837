"""
Rule-based action source

Simple per-unit-type heuristics. Used for enemy units and as the fallback
whenever an LLM action source is unavailable.
"""

import logging
import math
import random
from typing import List, Optional

from ..models.grid import GridPosition
from ..models.perception import SelfStatus, UnitAction, UnitPerception, VisibleTerrain, VisibleUnit
from ..models.world import BuildingType, UnitType

logger = logging.getLogger('rtscom.ai.rule_based')

# Spy heuristic assumes a 40x40 map
MAP_CENTER = GridPosition(col=20, row=20)


def find_nearest_resource(self_pos: GridPosition, terrain: List[VisibleTerrain]) -> Optional[GridPosition]:
    """Absolute position of the visible resource tile closest by manhattan distance"""
    resources = [t for t in terrain if t.has_resource]
    if not resources:
        return None
    closest = min(resources, key=lambda t: abs(t.dx) + abs(t.dy))
    return GridPosition(col=self_pos.col + closest.dx, row=self_pos.row + closest.dy)


def find_nearest_enemy(enemies: List[VisibleUnit]) -> VisibleUnit:
    """Closest enemy by euclidean distance; first one wins ties"""
    return min(enemies, key=lambda u: math.hypot(u.dx, u.dy))


class RuleBasedController:
    """
    Heuristic decision-making per unit type

    Args:
        rng: Random source for exploration directions (injectable for tests)
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def decide(self, perception: UnitPerception) -> UnitAction:
        """Return an action for the unit described by the perception"""
        status = perception.status
        enemies = [u for u in perception.visible_units if not u.is_friendly]
        friendlies = [u for u in perception.visible_units if u.is_friendly]
        command = (perception.current_command or '').lower()

        if status.type == UnitType.ENGINEER:
            return self._engineer_action(status, perception.visible_terrain, command)
        if status.type == UnitType.SCOUT:
            return self._scout_action(status, enemies)
        if status.type == UnitType.SOLDIER:
            return self._soldier_action(status, enemies, command)
        if status.type == UnitType.MESSENGER:
            return self._messenger_action(status, command)
        if status.type == UnitType.SIEGE:
            return self._siege_action(enemies)
        if status.type == UnitType.CAPTAIN:
            return self._captain_action(friendlies)
        if status.type == UnitType.SPY:
            return self._spy_action(status, enemies)
        return UnitAction(type='idle')

    def _random_step(self, origin: GridPosition, distance: float) -> GridPosition:
        angle = self.rng.random() * math.pi * 2
        return GridPosition(
            col=max(0, int(round(origin.col + math.cos(angle) * distance))),
            row=max(0, int(round(origin.row + math.sin(angle) * distance))),
        )

    def _engineer_action(self, status: SelfStatus, terrain: List[VisibleTerrain], command: str) -> UnitAction:
        if 'build' in command:
            return UnitAction(type='build', building_type=BuildingType.BARRACKS.value,
                              details='Building as commanded')

        nearest = find_nearest_resource(status.position, terrain)
        if nearest is not None:
            if 'gather' in command or 'extract' in command or 'resource' in command:
                return UnitAction(type='gather', target=nearest, details='Gathering as commanded')
            return UnitAction(type='gather', target=nearest, details='Gathering nearby resource')

        return UnitAction(type='move', target=self._random_step(status.position, 5),
                          details='Exploring to find resources')

    def _scout_action(self, status: SelfStatus, enemies: List[VisibleUnit]) -> UnitAction:
        if enemies:
            enemy = enemies[0]
            return UnitAction(type='communicate',
                              message=f"Enemy {enemy.type.value} spotted at {enemy.grid_label}",
                              details='Reporting enemy position')
        return UnitAction(type='move', target=self._random_step(status.position, 5), details='Exploring')

    def _soldier_action(self, status: SelfStatus, enemies: List[VisibleUnit], command: str) -> UnitAction:
        if 'attack' in command:
            if enemies:
                nearest = find_nearest_enemy(enemies)
                return UnitAction(type='attack', target_unit_id=nearest.id, details='Attacking as commanded')
            return UnitAction(type='move', target=self._random_step(status.position, 3),
                              details='Moving to find attack target')

        if enemies:
            nearest = find_nearest_enemy(enemies)
            if math.hypot(nearest.dx, nearest.dy) <= 3:
                return UnitAction(type='attack', target_unit_id=nearest.id, details='Engaging nearby enemy')

        return UnitAction(type='idle')

    def _messenger_action(self, status: SelfStatus, command: str) -> UnitAction:
        if command:
            return UnitAction(type='move', target=self._random_step(status.position, 4),
                              details=f"Carrying message: {command}")
        return UnitAction(type='idle')

    def _siege_action(self, enemies: List[VisibleUnit]) -> UnitAction:
        if enemies:
            nearest = find_nearest_enemy(enemies)
            return UnitAction(type='attack', target_unit_id=nearest.id, details='Bombarding enemy')
        return UnitAction(type='idle')

    def _captain_action(self, friendlies: List[VisibleUnit]) -> UnitAction:
        combat_units = [u for u in friendlies if u.type in (UnitType.SOLDIER, UnitType.SIEGE)]
        if combat_units:
            return UnitAction(type='communicate', message='Hold position and watch for enemies',
                              details=f"Commanding {len(combat_units)} nearby combat units")
        return UnitAction(type='idle')

    def _spy_action(self, status: SelfStatus, enemies: List[VisibleUnit]) -> UnitAction:
        if enemies:
            enemy = enemies[0]
            return UnitAction(type='communicate',
                              message=f"Intel: Enemy {enemy.type.value} at {enemy.grid_label}",
                              details='Relaying intelligence')

        pos = status.position
        dx = MAP_CENTER.col - pos.col
        dy = MAP_CENTER.row - pos.row
        dist = math.hypot(dx, dy)

        if dist < 2:
            target = GridPosition(
                col=max(0, pos.col + int(round((self.rng.random() - 0.5) * 4))),
                row=max(0, pos.row + int(round((self.rng.random() - 0.5) * 4))),
            )
            return UnitAction(type='move', target=target, details='Patrolling near center')

        step = 3
        target = GridPosition(
            col=max(0, int(round(pos.col + dx / dist * step))),
            row=max(0, int(round(pos.row + dy / dist * step))),
        )
        return UnitAction(type='move', target=target, details='Moving toward map center for recon')
