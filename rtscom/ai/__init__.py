"""
Decision sources, response parsing and validation
"""

from .agent_controller import AgentController
from .directive_parser import DirectiveParser
from .errors import DecisionSourceError, DecisionSourceUnavailable, MalformedResponseError, RateLimitedError
from .provider_manager import LLMProviderManager
from .providers import LocalDecisionSource
from .rule_based import RuleBasedController
from .sandbox import DirectiveValidator

__all__ = [
    'AgentController',
    'DirectiveParser',
    'DecisionSourceError', 'DecisionSourceUnavailable', 'MalformedResponseError', 'RateLimitedError',
    'LLMProviderManager',
    'LocalDecisionSource',
    'RuleBasedController',
    'DirectiveValidator',
]
