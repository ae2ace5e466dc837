"""
Agent controller - chooses tactical actions for individual units

Units of the local player are routed to an LLM action source with a short
timeout; everything else, and every LLM failure, goes to the rule-based
controller.
"""

import asyncio
import logging
from typing import Optional

from ..models.perception import UnitAction, UnitPerception
from ..perception.formatter import format_unit_perception
from .errors import STATUS_SERVICE_UNAVAILABLE, DecisionSourceError
from .rule_based import RuleBasedController

logger = logging.getLogger('rtscom.ai.agent_controller')

DEFAULT_ACTION_TIMEOUT = 5.0


class AgentController:
    """
    Routes action requests between an LLM source and rule-based heuristics

    Args:
        local_player_id: Player whose units may use the LLM source
        source: Object with an async generate_action(perception, unit_type),
            or None for rule-based only
        rule_based: Fallback controller
        action_timeout: Seconds to wait for the LLM source
    """

    def __init__(self, local_player_id: str, source=None, rule_based: Optional[RuleBasedController] = None,
                 action_timeout: float = DEFAULT_ACTION_TIMEOUT):
        self.local_player_id = local_player_id
        self.source = source
        self.rule_based = rule_based or RuleBasedController()
        self.action_timeout = action_timeout
        self.llm_enabled = source is not None

    async def request_action(self, perception: UnitPerception, player_id: Optional[str] = None) -> UnitAction:
        """
        Return an action for the unit described by the perception

        Args:
            perception: The unit's current perception
            player_id: Owner of the unit

        Returns:
            UnitAction (never raises for source failures)
        """
        if self.llm_enabled and player_id == self.local_player_id:
            action = await self._request_llm_action(perception)
            if action is not None:
                return action

        return self.rule_based.decide(perception)

    async def _request_llm_action(self, perception: UnitPerception) -> Optional[UnitAction]:
        status = perception.status
        prompt = format_unit_perception(perception)
        try:
            payload = await asyncio.wait_for(
                self.source.generate_action(prompt, status.type.value),
                timeout=self.action_timeout,
            )
            action = UnitAction.from_dict(payload)
        except asyncio.TimeoutError:
            logger.warning("LLM action for %s timed out after %.1fs - using rule-based AI",
                           status.id, self.action_timeout)
            return None
        except DecisionSourceError as e:
            if e.status == STATUS_SERVICE_UNAVAILABLE:
                self.llm_enabled = False
                logger.warning("LLM not configured, falling back to rule-based AI: %s", e)
            else:
                logger.warning("LLM action for %s failed: %s", status.id, e)
            return None
        except ValueError as e:
            logger.warning("LLM returned an unusable action for %s: %s", status.id, e)
            return None
        except Exception:
            logger.exception("Unexpected error requesting LLM action for %s - using rule-based AI", status.id)
            return None

        logger.debug("LLM action for %s %s: %s %s", status.type.value, status.id, action.type, action.details or "")
        return action
