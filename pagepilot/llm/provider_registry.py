"""
Provider Registry - string id to adapter lookup.

Adding a backend means registering one more adapter; the orchestrator
never changes.
"""

import logging
from typing import Dict, Iterator, List, Optional

from ..utils.logging import log_event
from ..utils.result import Result, Success, conflict_error, not_found_error
from .base_provider import BaseLLMProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of adapter instances, keyed by provider id.

    Registration order is preserved and used as the final tie-break when
    building fallback chains.
    """

    def __init__(self):
        self._providers: Dict[str, BaseLLMProvider] = {}

    def register(
        self, provider: BaseLLMProvider, replace: bool = False
    ) -> Result[None, str]:
        """
        Register an adapter.

        Args:
            provider: Adapter instance
            replace: Overwrite an adapter already registered under the same id

        Returns:
            Success, or a ConflictError Failure for a duplicate id
        """
        if provider.provider_id in self._providers and not replace:
            return conflict_error(
                f"Provider already registered: {provider.provider_id}",
                context={"provider_id": provider.provider_id},
            )

        self._providers[provider.provider_id] = provider

        log_event(
            "provider_registered",
            {
                "provider_id": provider.provider_id,
                "default_model": provider.default_model,
                "requires_api_key": provider.requires_api_key,
                "image_policy": provider.image_policy.value,
            },
            level=logging.DEBUG,
        )
        return Success(None)

    def unregister(self, provider_id: str) -> Result[BaseLLMProvider, str]:
        if provider_id not in self._providers:
            return not_found_error(f"Provider not found: {provider_id}")

        provider = self._providers.pop(provider_id)
        log_event("provider_unregistered", {"provider_id": provider_id})
        return Success(provider)

    def get(self, provider_id: str) -> Optional[BaseLLMProvider]:
        return self._providers.get(provider_id)

    def require(self, provider_id: str) -> Result[BaseLLMProvider, str]:
        provider = self._providers.get(provider_id)
        if provider is None:
            return not_found_error(
                f"Unknown provider: {provider_id}", {"provider_id": provider_id}
            )
        return Success(provider)

    def list_ids(self) -> List[str]:
        return list(self._providers)

    def list_providers(self) -> List[BaseLLMProvider]:
        return list(self._providers.values())

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __iter__(self) -> Iterator[BaseLLMProvider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)
