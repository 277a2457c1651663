"""
Provider Router - decides the order in which providers are tried.

The router only orders candidates; availability, quota and credential
checks happen in the orchestrator as each candidate comes up.
"""

import logging
from typing import List, Optional, Sequence

from ..utils.logging import log_event
from .constants import DEFAULT_PROVIDER_PRIORITY
from .provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ProviderRouter:
    """
    Builds the fallback chain for a request.

    Order: the explicitly requested provider, then registered providers in
    priority order (local and free before paid), then any registered
    provider the priority list does not mention, in registration order.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        priority: Optional[Sequence[str]] = None,
    ):
        self.registry = registry
        self.priority: List[str] = list(priority or DEFAULT_PROVIDER_PRIORITY)

    def set_priority(self, priority: Sequence[str]) -> None:
        self.priority = list(dict.fromkeys(priority))
        log_event("provider_priority_changed", {"priority": self.priority})

    def fallback_chain(self, requested: Optional[str] = None) -> List[str]:
        """
        Ordered candidate ids for one request.

        An explicitly requested id is always first, even when it is not
        registered, so the orchestrator can report it as a configuration
        failure rather than silently ignoring it.
        """
        chain: List[str] = []
        if requested:
            chain.append(requested)

        registered = self.registry.list_ids()
        for provider_id in self.priority:
            if provider_id in self.registry and provider_id not in chain:
                chain.append(provider_id)

        for provider_id in registered:
            if provider_id not in chain:
                chain.append(provider_id)

        return chain
