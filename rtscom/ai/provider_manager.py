"""
LLM Provider Manager

Builds the decision source for a session from the llm_providers config list.
Providers are tried in priority order; when none can be built the manager
hands out a LocalDecisionSource so callers degrade to rule-based behaviour.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from .providers import (
    AnthropicLLMClient,
    BaseLLMClient,
    DeepSeekLLMClient,
    GeminiLLMClient,
    LocalDecisionSource,
    OpenAILLMClient,
)

logger = logging.getLogger('rtscom.ai.provider_manager')

ENV_KEY_MAP = {
    'openai': 'OPENAI_API_KEY',
    'gpt': 'OPENAI_API_KEY',
    'gemini': 'GEMINI_API_KEY',
    'claude': 'ANTHROPIC_API_KEY',
    'anthropic': 'ANTHROPIC_API_KEY',
    'deepseek': 'DEEPSEEK_API_KEY',
}

CLIENT_CLASSES = {
    'openai': OpenAILLMClient,
    'gpt': OpenAILLMClient,
    'gemini': GeminiLLMClient,
    'claude': AnthropicLLMClient,
    'anthropic': AnthropicLLMClient,
    'deepseek': DeepSeekLLMClient,
}


class ProviderConfig:
    """Configuration for a single LLM provider"""

    def __init__(self, config_dict: Dict[str, Any]):
        self.name = config_dict.get('name', 'unnamed')
        self.priority = config_dict.get('priority', 999)
        self.enabled = config_dict.get('enabled', False)
        self.provider = config_dict.get('provider', '').lower()
        self.model = config_dict.get('model', '')
        self.endpoint = config_dict.get('endpoint', '')
        self.api_key = config_dict.get('api_key', '')
        self.timeout = config_dict.get('timeout', 10)
        self.max_output_tokens = config_dict.get('max_output_tokens', 500)

    def __repr__(self):
        return f"ProviderConfig(name={self.name}, priority={self.priority}, provider={self.provider}, model={self.model})"


class LLMProviderManager:
    """
    Picks the highest-priority provider that can be initialized

    A provider that fails to initialize is counted and skipped; after
    max_failures_per_provider failures it is no longer attempted.
    """

    def __init__(self, providers_config: Optional[List[Dict[str, Any]]] = None):
        """
        Initialize provider manager

        Args:
            providers_config: List of provider configuration dicts
        """
        self.providers: List[ProviderConfig] = []
        self.provider_failure_counts: Dict[str, int] = {}
        self.max_failures_per_provider = 3

        for config_dict in providers_config or []:
            provider_config = ProviderConfig(config_dict)
            if provider_config.enabled:
                self.providers.append(provider_config)

        # Lower number = higher priority
        self.providers.sort(key=lambda p: p.priority)

        if not self.providers:
            logger.warning("No enabled LLM providers configured - running in local mode")
        else:
            logger.info("Configured %d enabled LLM providers:", len(self.providers))
            for p in self.providers:
                logger.info("  Priority %d: %s (%s %s)", p.priority, p.name, p.provider, p.model)

    def resolve_api_key(self, provider_config: ProviderConfig) -> str:
        """API key from the provider config, else from the provider's environment variable"""
        if provider_config.api_key:
            return provider_config.api_key
        env_var = ENV_KEY_MAP.get(provider_config.provider)
        if env_var:
            return os.getenv(env_var, '')
        return ''

    def create_client(self, provider_config: ProviderConfig) -> Tuple[Optional[BaseLLMClient], str]:
        """
        Create an LLM client for a provider

        Args:
            provider_config: Provider configuration

        Returns:
            Tuple of (client, error_message); client is None on failure
        """
        if provider_config.provider == 'local':
            return LocalDecisionSource(), ""

        client_class = CLIENT_CLASSES.get(provider_config.provider)
        if client_class is None:
            return None, f"Unknown provider type: {provider_config.provider}"

        api_key = self.resolve_api_key(provider_config)
        if not api_key:
            return None, f"API key not set for {provider_config.name}"

        try:
            client = client_class(
                api_key=api_key,
                model=provider_config.model,
                endpoint=provider_config.endpoint or None,
                timeout=provider_config.timeout,
                max_output_tokens=provider_config.max_output_tokens,
            )
        except (TypeError, ValueError) as e:
            return None, f"Failed to initialize {provider_config.name}: {e}"
        return client, ""

    def get_next_provider(self) -> Optional[Tuple[ProviderConfig, BaseLLMClient]]:
        """
        Get the highest-priority provider that initializes (skipping failed ones)

        Returns:
            Tuple of (provider_config, client) or None if no providers are available
        """
        for provider_config in self.providers:
            failure_count = self.provider_failure_counts.get(provider_config.name, 0)
            if failure_count >= self.max_failures_per_provider:
                logger.warning("Skipping %s (too many failures: %d)", provider_config.name, failure_count)
                continue

            client, error = self.create_client(provider_config)
            if client is not None:
                logger.info("Using LLM provider: %s (priority %d, %s %s)",
                            provider_config.name, provider_config.priority,
                            provider_config.provider, provider_config.model)
                return provider_config, client

            logger.warning("Failed to initialize %s: %s", provider_config.name, error)
            self.record_failure(provider_config.name)

        return None

    def get_source(self) -> BaseLLMClient:
        """Decision source for the session; LocalDecisionSource when nothing is usable"""
        selected = self.get_next_provider()
        if selected is None:
            logger.warning("No usable LLM provider - decisions fall back to local defaults")
            return LocalDecisionSource()
        return selected[1]

    def record_failure(self, provider_name: str):
        """Record a failure for a provider"""
        self.provider_failure_counts[provider_name] = self.provider_failure_counts.get(provider_name, 0) + 1
        logger.warning("Provider %s failure count: %d/%d",
                       provider_name, self.provider_failure_counts[provider_name],
                       self.max_failures_per_provider)

    def record_success(self, provider_name: str):
        """Record a success for a provider (resets failure count)"""
        self.provider_failure_counts.pop(provider_name, None)

    def reset_failures(self):
        """Reset all provider failure counts"""
        self.provider_failure_counts.clear()
        logger.info("Reset all provider failure counts")
