"""
RTS Commander (RTSCOM)
Decision-making layer for a real-time strategy simulation

This package decides when to consult an LLM for strategic orders and how
those orders become durable per-unit directives:
- World snapshot ingestion
- Strategic coordination (trigger gating, batching, validation)
- Per-unit decision loops (rule-based and LLM-backed)
- Multi-provider LLM clients with graceful degradation
"""

VERSION = "1.0.0"

from .engine.events import EventBus, GameEventType
from .runtime.coordinator import StrategicCoordinator
from .runtime.scheduler import AIScheduler, create_scheduler
from .world.scanner import WorldScanner

__all__ = [
    'VERSION',
    'EventBus', 'GameEventType',
    'StrategicCoordinator',
    'AIScheduler', 'create_scheduler',
    'WorldScanner',
]
