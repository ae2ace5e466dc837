"""
Runtime components: strategic coordinator, unit brains and the host scheduler
"""

from .brain import UnitBrain
from .coordinator import StrategicCoordinator
from .scheduler import AIScheduler, create_scheduler
from .token_tracker import TokenTracker

__all__ = ['UnitBrain', 'StrategicCoordinator', 'AIScheduler', 'create_scheduler', 'TokenTracker']
