"""
Engine-side plumbing consumed by the decision layer
"""

from .communication import Communication
from .events import EventBus, GameEvent, GameEventType, event_field

__all__ = ['Communication', 'EventBus', 'GameEvent', 'GameEventType', 'event_field']
