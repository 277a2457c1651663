"""
Provider Factory - constructs the process-wide LLM service.

Wires registry, router, health monitor, cost tracker, credential resolver
and snapshot store from ``Settings``. Call once at startup and pass the
result to callers.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from redis.asyncio import Redis

from ..config.settings import Settings, get_settings
from ..safety.permission_service import PermissionConfig, PermissionLevel, PermissionService
from ..storage.credential_service import CredentialService, InMemoryCredentialService
from ..storage.secret_store import SecretStore
from ..storage.snapshot_store import SnapshotStore
from ..utils.logging import log_event
from .base_provider import BaseLLMProvider
from .cost_tracker import CostTracker
from .llm_service import CredentialResolver, LLMService
from .provider_health_monitor import ProviderHealthMonitor
from .provider_registry import ProviderRegistry
from .provider_router import ProviderRouter
from .providers import create_default_providers
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def create_redis_client(settings: Optional[Settings] = None) -> Redis:
    settings = settings or get_settings()
    return Redis.from_url(settings.redis_url, decode_responses=True)


def create_llm_service(
    settings: Optional[Settings] = None,
    redis_client: Optional[Redis] = None,
    secret_store: Optional[SecretStore] = None,
    providers: Optional[Iterable[BaseLLMProvider]] = None,
    credential_service: Optional[CredentialResolver] = None,
    clock: Callable[[], float] = time.time,
) -> LLMService:
    """
    Create a fully wired LLMService.

    Args:
        settings: Configuration (defaults to ``get_settings()``)
        redis_client: Backs credentials and snapshots; without it credentials
            are held in memory and state is not persisted
        secret_store: Encrypts stored API keys
        providers: Adapters to register (defaults to every built-in backend,
            filtered by ``settings.enabled_providers``)
        credential_service: Overrides the resolver built from ``redis_client``
        clock: Time source for the breaker and quota windows

    Example:
        >>> redis = create_redis_client()
        >>> service = create_llm_service(redis_client=redis)
        >>> response = await service.chat(ChatRequest([LLMMessage.user("hi")]))
    """
    settings = settings or get_settings()

    registry = ProviderRegistry()
    if providers is None:
        providers = create_default_providers(
            ollama_url=settings.ollama_url,
            timeout_seconds=settings.stream_timeout_seconds,
        )
        if settings.enabled_providers is not None:
            enabled = set(settings.enabled_providers)
            providers = [p for p in providers if p.provider_id in enabled]

    for provider in providers:
        result = registry.register(provider)
        if result.is_failure():
            log_event(
                "provider_registration_failed",
                {"provider_id": provider.provider_id, "error": result.error},
                level=logging.WARNING,
            )

    health_monitor = ProviderHealthMonitor(
        failure_threshold=settings.failure_threshold,
        reset_timeout_seconds=settings.reset_timeout_seconds,
        half_open_requests=settings.half_open_requests,
        degraded_threshold=settings.degraded_threshold,
        unhealthy_threshold=settings.unhealthy_threshold,
        clock=clock,
    )
    cost_tracker = CostTracker(
        warning_threshold=settings.quota_warning_threshold,
        critical_threshold=settings.quota_critical_threshold,
        alert_suppression_seconds=settings.alert_suppression_seconds,
        clock=clock,
    )

    snapshot_store = None
    if credential_service is None:
        if redis_client is not None:
            credential_service = CredentialService(redis_client, secret_store)
        else:
            credential_service = InMemoryCredentialService()
    if redis_client is not None:
        snapshot_store = SnapshotStore(redis_client)

    service = LLMService(
        registry=registry,
        health_monitor=health_monitor,
        cost_tracker=cost_tracker,
        credential_service=credential_service,
        retry_policy=RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        ),
        router=ProviderRouter(registry, settings.provider_priority),
        permission_service=PermissionService(
            PermissionConfig(level=PermissionLevel(settings.permission_level))
        ),
        snapshot_store=snapshot_store,
        attempt_timeout=settings.attempt_timeout_seconds,
        stream_timeout=settings.stream_timeout_seconds,
    )

    log_event(
        "llm_service_created",
        {
            "providers": registry.list_ids(),
            "credential_store": type(credential_service).__name__,
            "persistence": snapshot_store is not None,
            "max_retries": settings.max_retries,
        },
    )
    return service
