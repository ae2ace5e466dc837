"""Tests for configuration defaults and merging"""
from rtscom.config.defaults import DEFAULT_CONFIG, merge_config


def test_defaults_match_documented_timings():
    coordinator = DEFAULT_CONFIG["coordinator"]

    assert coordinator["heartbeat_interval"] == 1200
    assert coordinator["min_evaluation_gap"] == 200
    assert coordinator["player_command_gap"] == 30
    assert coordinator["world_scan_interval"] == 20
    assert coordinator["resource_discovery_threshold"] == 3
    assert DEFAULT_CONFIG["safety"]["sandbox_enabled"] is True


def test_merge_is_deep_and_does_not_mutate_defaults():
    merged = merge_config({"coordinator": {"heartbeat_interval": 600}, "units": {"think_intervals": {"spy": 4}}})

    assert merged["coordinator"]["heartbeat_interval"] == 600
    assert merged["coordinator"]["min_evaluation_gap"] == 200
    assert merged["units"]["think_intervals"] == {"scout": 5, "captain": 6, "soldier": 8, "engineer": 12, "spy": 4}
    assert DEFAULT_CONFIG["coordinator"]["heartbeat_interval"] == 1200
    assert "spy" not in DEFAULT_CONFIG["units"]["think_intervals"]


def test_lists_are_replaced():
    merged = merge_config({"ai": {"llm_providers": [{"name": "offline", "provider": "local", "enabled": True}]}})

    assert [p["name"] for p in merged["ai"]["llm_providers"]] == ["offline"]


def test_merge_none():
    merged = merge_config(None)

    assert merged == DEFAULT_CONFIG
    assert merged is not DEFAULT_CONFIG
