"""
Perception building and prompt serialization
"""

from .builder import build_unit_perception, tiles_in_range, visible_resource_tiles
from .formatter import format_batch_perception, format_unit_perception

__all__ = [
    'build_unit_perception', 'tiles_in_range', 'visible_resource_tiles',
    'format_batch_perception', 'format_unit_perception',
]
