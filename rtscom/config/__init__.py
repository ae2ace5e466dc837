"""
Configuration defaults for RTSCOM
"""

from .defaults import DEFAULT_CONFIG, merge_config

__all__ = ['DEFAULT_CONFIG', 'merge_config']
