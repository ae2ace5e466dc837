"""
Directive sandbox - validates every decision-source proposal before it
reaches the directive store
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..models.directives import DEFAULT_PRIORITY, Directive, DirectiveProposal, DirectiveType, parse_directive_type
from ..models.grid import GridPosition
from ..models.world import WorldState

logger = logging.getLogger('rtscom.ai.sandbox')

DEFAULT_DIRECTIVE_TTL = 1200


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_target(target: Dict[str, float], width: int, height: int) -> GridPosition:
    """Round a raw target to the nearest tile and clamp it into the map"""
    col = _round_half_up(target['col'])
    row = _round_half_up(target['row'])
    return GridPosition(
        col=max(0, min(width - 1, col)),
        row=max(0, min(height - 1, row)),
    )


@dataclass
class ValidationResult:
    """
    Outcome of validating one proposal

    Attributes:
        directive: The accepted directive, or None if blocked
        revoke: True when the unit's existing directive must be removed
        reason: Human-readable reason for the decision
    """
    directive: Optional[Directive]
    revoke: bool
    reason: str

    @property
    def allowed(self) -> bool:
        return self.directive is not None


class DirectiveValidator:
    """
    Safety validator for decision-source directives

    Ensures proposals target live units the player owns, use a known
    directive type, respect the standing-order gate and stay on the map.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, default_ttl: int = DEFAULT_DIRECTIVE_TTL):
        """
        Initialize directive validator

        Args:
            config: Safety section of the configuration
            default_ttl: TTL stamped on accepted directives
        """
        config = config or {}
        self.enabled = config.get('sandbox_enabled', True)
        self.audit_log_enabled = config.get('audit_log', True)
        self.default_ttl = default_ttl

        logger.info("DirectiveValidator initialized (enabled: %s)", self.enabled)
        if not self.enabled:
            logger.warning("Standing-order gate is DISABLED - any directive type passes!")

    def validate(
        self,
        proposal: DirectiveProposal,
        world_state: WorldState,
        player_id: str,
        standing_orders: Dict[str, str],
        tick: int
    ) -> ValidationResult:
        """
        Validate a single proposal

        Args:
            proposal: Parsed proposal from the decision source
            world_state: Current world state
            player_id: Player the coordinator acts for
            standing_orders: unit_id -> player order text
            tick: Current tick, stamped as creation tick

        Returns:
            ValidationResult
        """
        unit = world_state.get_unit(proposal.unit_id)
        if unit is None:
            return self._blocked(proposal, "unit not found")
        if unit.player_id != player_id:
            return self._blocked(proposal, "unit not owned by %s" % player_id)
        if not unit.is_alive():
            return self._blocked(proposal, "unit is dead")

        directive_type = parse_directive_type(proposal.type)
        if directive_type is None:
            return self._blocked(proposal, "unknown directive type %r" % proposal.type)

        if (self.enabled and directive_type != DirectiveType.IDLE
                and proposal.unit_id not in standing_orders):
            # Without a player order a unit may only idle; drop whatever it holds
            return self._blocked(proposal, "no standing order for %s" % directive_type.value, revoke=True)

        target_position = None
        if proposal.target is not None:
            if not all(math.isfinite(proposal.target.get(axis, math.nan)) for axis in ('col', 'row')):
                return self._blocked(proposal, "target %s is not a finite tile" % proposal.target)
            target_position = clamp_target(proposal.target, world_state.width, world_state.height)

        directive = Directive(
            unit_id=proposal.unit_id,
            type=directive_type,
            created_at_tick=tick,
            ttl=self.default_ttl,
            priority=proposal.priority if proposal.priority is not None else DEFAULT_PRIORITY,
            target_position=target_position,
            target_unit_id=proposal.target_unit_id,
            building_type=proposal.building_type,
            resource_type=proposal.resource_type,
            reasoning=proposal.reasoning,
        )
        self._audit_log("ALLOWED", proposal, "directive passed validation")
        return ValidationResult(directive=directive, revoke=False, reason="ok")

    def _blocked(self, proposal: DirectiveProposal, reason: str, revoke: bool = False) -> ValidationResult:
        self._audit_log("BLOCKED", proposal, reason)
        return ValidationResult(directive=None, revoke=revoke, reason=reason)

    def _audit_log(self, action: str, proposal: DirectiveProposal, reason: str):
        """
        Log directive validation action for audit trail

        Args:
            action: "ALLOWED" or "BLOCKED"
            proposal: Proposal being validated
            reason: Reason for decision
        """
        if not self.audit_log_enabled:
            return

        logger.info(
            "[AUDIT] %s: %s for unit %s - %s",
            action,
            proposal.type,
            proposal.unit_id,
            reason
        )
