"""
Data models for units, the world snapshot, directives and perceptions
"""

from .grid import GridPosition, position_to_label, label_to_position
from .directives import Directive, DirectiveProposal, DirectiveType, parse_directive_type
from .perception import UnitAction, UnitPerception
from .world import Building, MapTile, Unit, UnitType, WorldState

__all__ = [
    'GridPosition', 'position_to_label', 'label_to_position',
    'Directive', 'DirectiveProposal', 'DirectiveType', 'parse_directive_type',
    'UnitAction', 'UnitPerception',
    'Building', 'MapTile', 'Unit', 'UnitType', 'WorldState',
]
