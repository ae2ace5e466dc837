"""
Default configuration values for RTSCOM

All intervals and gaps are in simulation ticks (10 ticks per second at the
default tick rate); timeouts are wall-clock seconds.
"""

import copy
from typing import Any, Dict, Optional

DEFAULT_CONFIG = {
    "logging": {
        "level": "INFO",
        "log_dir": "rtscom_logs"
    },
    "coordinator": {
        "heartbeat_interval": 1200,
        "min_evaluation_gap": 200,
        "player_command_gap": 30,
        "default_directive_ttl": 1200,
        "world_scan_interval": 20,
        "resource_discovery_threshold": 3,
        "max_resource_entries": 10,
        "evaluation_timeout": 10.0
    },
    "units": {
        "think_intervals": {
            "scout": 5,
            "captain": 6,
            "soldier": 8,
            "engineer": 12
        },
        "default_think_interval": 10,
        "action_timeout": 5.0,
        "audit_log_entries": 10,
        "communication_range": 6,
        "message_retention_ticks": 200,
        "message_cleanup_interval": 100
    },
    "ai": {
        "llm_providers": [
            {
                "name": "claude-haiku",
                "provider": "anthropic",
                "model": "claude-haiku-4-5-20251001",
                "enabled": True,
                "priority": 1,
                "timeout": 10,
                "max_output_tokens": 500
            }
        ]
    },
    "safety": {
        "sandbox_enabled": True,
        "audit_log": True
    }
}


def merge_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Deep-merge user overrides onto a copy of DEFAULT_CONFIG

    Args:
        overrides: Partial configuration dictionary

    Returns:
        New configuration dictionary (DEFAULT_CONFIG is never mutated)
    """
    merged = copy.deepcopy(DEFAULT_CONFIG)
    _merge_into(merged, overrides or {})
    return merged


def _merge_into(base: Dict[str, Any], overrides: Dict[str, Any]):
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge_into(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
