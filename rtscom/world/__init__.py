"""
World snapshot ingestion
"""

from .scanner import WorldScanner

__all__ = ['WorldScanner']
