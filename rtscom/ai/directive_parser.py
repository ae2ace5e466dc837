"""
Directive parser - converts decision-source JSON into DirectiveProposal objects
"""

import logging
import math
from typing import Any, Dict, List, Optional

from ..models.directives import DirectiveProposal
from .errors import MalformedResponseError

logger = logging.getLogger('rtscom.ai.directive_parser')


class DirectiveParser:
    """
    Parses a decision-source payload into unvalidated proposals

    Structural problems with the payload as a whole raise
    MalformedResponseError. Problems with single entries only drop that
    entry (or that field).
    """

    def _validate_target(self, target: Any, unit_id: str) -> Optional[Dict[str, float]]:
        """
        Validate and normalize target coordinates

        LLMs sometimes provide string numbers or partial targets.

        Args:
            target: Raw target value
            unit_id: Unit ID for logging

        Returns:
            {"col": float, "row": float} or None if unusable
        """
        if target is None:
            return None

        if not isinstance(target, dict):
            logger.warning("Target for %s is not an object (got %s)", unit_id, type(target).__name__)
            return None

        coords = {}
        for axis in ('col', 'row'):
            val = target.get(axis)
            if isinstance(val, bool):
                val = None
            if isinstance(val, (int, float, str)):
                try:
                    coords[axis] = float(val)
                except (ValueError, OverflowError):
                    logger.warning("Target %s for %s is not a usable number: %r", axis, unit_id, val)
                    return None
            else:
                logger.warning("Target for %s is missing a numeric %s: %s", unit_id, axis, target)
                return None
            if not math.isfinite(coords[axis]):
                logger.warning("Target %s for %s is not finite: %s", axis, unit_id, val)
                return None

        return coords

    def _parse_priority(self, value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and math.isfinite(value):
            return int(value)
        return None

    def parse_directives(self, payload: Any) -> List[DirectiveProposal]:
        """
        Parse a directives payload

        Args:
            payload: Response object, expected {"directives": [...]}

        Returns:
            List of DirectiveProposal objects

        Raises:
            MalformedResponseError: If the payload has no directives list
        """
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Expected an object, got {type(payload).__name__}")

        entries = payload.get('directives')
        if not isinstance(entries, list):
            raise MalformedResponseError("Response has no 'directives' list")

        proposals = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.warning("Skipping non-dict directive at index %d (type: %s): %s",
                               i, type(entry).__name__, entry)
                continue

            unit_id = entry.get('unitId')
            directive_type = entry.get('type')
            if not isinstance(unit_id, str) or not isinstance(directive_type, str):
                logger.warning("Skipping directive at index %d without unitId/type: %s", i, entry)
                continue

            proposals.append(DirectiveProposal(
                unit_id=unit_id,
                type=directive_type,
                target=self._validate_target(entry.get('target'), unit_id),
                target_unit_id=entry.get('targetUnitId'),
                building_type=entry.get('buildingType'),
                resource_type=entry.get('resourceType'),
                priority=self._parse_priority(entry.get('priority')),
                reasoning=entry.get('reasoning'),
            ))

        logger.info("Parsed %d directive proposals from %d entries", len(proposals), len(entries))
        return proposals
