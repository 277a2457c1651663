"""
LLM Service - orchestrates chat dispatch across providers.

Coordinates the registry, router, health monitor, cost tracker and
credential resolver. ``chat`` is the single entry point; everything else
is introspection or operator control.

Dispatch, per candidate in fallback order:
    1. skip if the circuit breaker reports it unavailable
    2. skip if its quota is exhausted
    3. skip if it needs a key and none resolves
    4. attempt up to ``max_retries`` times, retrying transient errors only
    5. first success wins; exhausting a candidate records a health failure

A stream that fails after delivering text ends the call. Text already
delivered is never retracted or continued by another provider.
"""

import asyncio
import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
)

from ..safety.permission_service import PermissionLevel, PermissionService
from ..utils.logging import correlation_scope, log_event, track
from ..utils.result import Result, Success, not_found_error, validation_error
from .base_provider import BaseLLMProvider, emit_chunk
from .constants import RetryDefaults
from .cost_tracker import CostSummary, CostTracker, ProviderUsage
from .exceptions import (
    AllProvidersFailedError,
    ChatCancelledError,
    LLMProviderError,
    ProviderAttempt,
    ProviderConfigurationError,
    ProviderTimeoutError,
    StreamingError,
    parse_provider_error,
)
from .provider_health_monitor import HealthStatus, ProviderHealth, ProviderHealthMonitor
from .provider_registry import ProviderRegistry
from .provider_router import ProviderRouter
from .retry import RetryPolicy
from .types import ChatRequest, ChatResponse, TokenUsage

if TYPE_CHECKING:
    from ..storage.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


class CredentialResolver(Protocol):
    """Anything that resolves ``provider_id`` to an api_key / endpoint pair."""

    async def get_provider_config(self, provider_id: str) -> Any: ...

    async def rotate_key(self) -> Result[int, str]: ...


class _CandidateExhausted(Exception):
    """Internal: one candidate gave up; move on to the next."""

    def __init__(self, error: LLMProviderError, attempts: int):
        super().__init__(str(error))
        self.error = error
        self.attempts = attempts


class _ChunkCallbackError(Exception):
    """Internal: the caller's ``on_chunk`` raised while a stream was running."""

    def __init__(self, error: Exception):
        super().__init__(str(error))
        self.error = error


class LLMService:
    """
    Multi-provider chat orchestrator.

    One instance per process, constructed by ``create_llm_service`` and
    passed to whoever needs it. All shared state lives in the health
    monitor and cost tracker, whose updates never span an ``await``.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        health_monitor: ProviderHealthMonitor,
        cost_tracker: CostTracker,
        credential_service: CredentialResolver,
        retry_policy: Optional[RetryPolicy] = None,
        router: Optional[ProviderRouter] = None,
        permission_service: Optional[PermissionService] = None,
        snapshot_store: Optional["SnapshotStore"] = None,
        attempt_timeout: float = RetryDefaults.ATTEMPT_TIMEOUT_SECONDS,
        stream_timeout: float = RetryDefaults.STREAM_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.health_monitor = health_monitor
        self.cost_tracker = cost_tracker
        self.credentials = credential_service
        self.retry_policy = retry_policy or RetryPolicy()
        self.router = router or ProviderRouter(registry)
        self.permissions = permission_service or PermissionService()
        self.snapshot_store = snapshot_store
        self.attempt_timeout = attempt_timeout
        self.stream_timeout = stream_timeout
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """
        Send a chat request, falling back across providers.

        Each call runs under a fresh correlation id; the caller's id is
        restored when it returns.

        Returns:
            The first successful response. For streaming requests the text
            went through ``request.on_chunk`` and ``content`` is empty.

        Raises:
            AllProvidersFailedError: Every candidate was skipped or failed
            StreamingError: A stream failed after delivering text
            ChatCancelledError: ``request.cancel_event`` was set

        Exceptions raised by ``request.on_chunk`` propagate unchanged.
        """
        with correlation_scope():
            return await self._dispatch(request)

    @track(
        operation="llm_chat",
        track_performance=True,
        frequency="low_frequency",
    )
    async def _dispatch(self, request: ChatRequest) -> ChatResponse:
        attempts: List[ProviderAttempt] = []
        last_error: Optional[BaseException] = None

        for provider_id in self.router.fallback_chain(request.provider_id):
            if request.cancelled:
                self._cancelled(attempts, provider_id)

            provider = self.registry.get(provider_id)
            if provider is None:
                self._skip(attempts, provider_id, "not registered")
                continue

            if not self.health_monitor.is_provider_available(provider_id):
                status = self.health_monitor.get_provider_health(provider_id).status
                reason = "disabled" if status == HealthStatus.DISABLED else "circuit open"
                self._skip(attempts, provider_id, reason)
                continue

            model = self._model_for(provider, request)

            if not self.cost_tracker.is_within_quota(provider_id, model):
                self.health_monitor.release_trial(provider_id)
                self._skip(attempts, provider_id, "quota exhausted", model=model)
                continue

            credential = await self._resolve_credential(provider_id)
            api_key = getattr(credential, "api_key", "") or ""
            endpoint = getattr(credential, "endpoint", None)

            if provider.requires_api_key and not api_key:
                self.health_monitor.release_trial(provider_id)
                self._skip(attempts, provider_id, "no credential")
                continue

            try:
                response, tries = await self._try_provider(
                    provider, model, api_key, endpoint, request
                )
            except _CandidateExhausted as exhausted:
                last_error = exhausted.error
                attempts.append(
                    ProviderAttempt(
                        provider_id=provider_id,
                        outcome="failed",
                        reason=exhausted.error.error_type,
                        attempts=exhausted.attempts,
                    )
                )
                continue

            attempts.append(ProviderAttempt(provider_id, "succeeded", "ok", tries))
            return self._complete(provider_id, model, request, response, tries, attempts)

        log_event(
            "chat_all_providers_failed",
            {
                "requested_provider": request.provider_id,
                "attempts": [a.to_dict() for a in attempts],
                "last_error": str(last_error) if last_error else None,
            },
            level=logging.ERROR,
        )
        raise AllProvidersFailedError(attempts, last_error)

    def _model_for(self, provider: BaseLLMProvider, request: ChatRequest) -> str:
        # A model override only applies to the provider it was chosen for
        if request.model and provider.provider_id == request.provider_id:
            return request.model
        return provider.default_model

    async def _resolve_credential(self, provider_id: str) -> Any:
        """Credential for ``provider_id``, or None when the resolver fails."""
        try:
            return await self.credentials.get_provider_config(provider_id)
        except asyncio.CancelledError:
            self.health_monitor.release_trial(provider_id)
            raise
        except Exception as e:
            log_event(
                "credential_decrypt_failed",
                {
                    "provider_id": provider_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                level=logging.WARNING,
            )
            return None

    def _skip(
        self,
        attempts: List[ProviderAttempt],
        provider_id: str,
        reason: str,
        **extra: Any,
    ) -> None:
        attempts.append(ProviderAttempt(provider_id, "skipped", reason))
        log_event(
            "chat_candidate_skipped",
            {"provider_id": provider_id, "reason": reason, **extra},
        )

    def _cancelled(self, attempts: List[ProviderAttempt], provider_id: str) -> None:
        log_event(
            "chat_cancelled",
            {"next_provider": provider_id, "providers_considered": len(attempts)},
        )
        raise ChatCancelledError(
            f"Chat cancelled after {len(attempts)} provider(s) were considered"
        )

    async def _try_provider(
        self,
        provider: BaseLLMProvider,
        model: str,
        api_key: str,
        endpoint: Optional[str],
        request: ChatRequest,
    ) -> Tuple[ChatResponse, int]:
        """
        Run the retry loop against one candidate.

        Raises:
            _CandidateExhausted: The candidate failed; try the next one
            StreamingError: Partial output was delivered; stop the call
        """
        provider_id = provider.provider_id
        attempt = 0

        while True:
            if request.cancelled:
                self.health_monitor.release_trial(provider_id)
                raise ChatCancelledError(f"Chat cancelled before attempt {attempt + 1} on {provider_id}")

            try:
                if request.streaming:
                    response = await self._stream_once(provider, model, api_key, endpoint, request)
                else:
                    response = await self._generate_once(provider, model, api_key, endpoint, request)
                return response, attempt + 1

            except StreamingError as e:
                self.health_monitor.record_failure(provider_id, e)
                raise
            except _ChunkCallbackError as e:
                # The caller's callback failed, not the backend
                self.health_monitor.release_trial(provider_id)
                log_event(
                    "chat_chunk_callback_failed",
                    {
                        "provider_id": provider_id,
                        "model": model,
                        "error_type": type(e.error).__name__,
                        "error": str(e.error),
                    },
                    level=logging.ERROR,
                )
                raise e.error from None
            except ProviderConfigurationError as e:
                # Misconfiguration says nothing about the backend's health
                self.health_monitor.release_trial(provider_id)
                log_event(
                    "chat_attempt_failed",
                    {
                        "provider_id": provider_id,
                        "model": model,
                        "attempt": attempt + 1,
                        "error_type": e.error_type,
                        "error": str(e),
                        "retryable": False,
                    },
                    level=logging.WARNING,
                )
                raise _CandidateExhausted(e, attempt + 1) from e
            except asyncio.CancelledError:
                self.health_monitor.release_trial(provider_id)
                raise
            except LLMProviderError as e:
                error = e

            log_event(
                "chat_attempt_failed",
                {
                    "provider_id": provider_id,
                    "model": model,
                    "attempt": attempt + 1,
                    "max_attempts": self.retry_policy.max_retries,
                    "error_type": error.error_type,
                    "error": str(error),
                    "retryable": error.retryable,
                },
                level=logging.WARNING,
            )

            if not self.retry_policy.should_retry(error, attempt):
                self.health_monitor.record_failure(provider_id, error)
                raise _CandidateExhausted(error, attempt + 1)

            delay = self.retry_policy.delay_for(attempt, error)
            log_event(
                "chat_retry_scheduled",
                {
                    "provider_id": provider_id,
                    "next_attempt": attempt + 2,
                    "delay_seconds": delay,
                },
            )
            await self._backoff(delay, request)
            attempt += 1

    async def _backoff(self, delay: float, request: ChatRequest) -> None:
        """Wait out a backoff delay, waking early if the caller cancels."""
        if request.cancel_event is None:
            await self._sleep(delay)
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        cancelled = asyncio.ensure_future(request.cancel_event.wait())
        try:
            await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            cancelled.cancel()

    async def _generate_once(
        self,
        provider: BaseLLMProvider,
        model: str,
        api_key: str,
        endpoint: Optional[str],
        request: ChatRequest,
    ) -> ChatResponse:
        try:
            return await asyncio.wait_for(
                provider.generate(request.messages, api_key, model=model, endpoint=endpoint),
                timeout=self.attempt_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise self._normalize_error(e, provider.provider_id, model, self.attempt_timeout) from e

    async def _stream_once(
        self,
        provider: BaseLLMProvider,
        model: str,
        api_key: str,
        endpoint: Optional[str],
        request: ChatRequest,
    ) -> ChatResponse:
        on_chunk = request.on_chunk
        if on_chunk is None:
            raise ProviderConfigurationError(
                "Streaming request has no on_chunk callback",
                provider_id=provider.provider_id,
                config_field="on_chunk",
            )
        chunks: List[str] = []

        async def forward(text: str) -> None:
            chunks.append(text)
            try:
                await emit_chunk(on_chunk, text)
            except Exception as e:
                raise _ChunkCallbackError(e) from e

        try:
            usage = await asyncio.wait_for(
                provider.stream(
                    request.messages, api_key, forward, model=model, endpoint=endpoint
                ),
                timeout=self.stream_timeout,
            )
        except (asyncio.CancelledError, _ChunkCallbackError):
            raise
        except Exception as e:
            error = self._normalize_error(e, provider.provider_id, model, self.stream_timeout)
            if not chunks:
                raise error from e

            log_event(
                "chat_stream_interrupted",
                {
                    "provider_id": provider.provider_id,
                    "model": model,
                    "chunks_received": len(chunks),
                    "error_type": error.error_type,
                    "error": str(error),
                },
                level=logging.ERROR,
            )
            raise StreamingError(
                message=f"Stream from {provider.provider_id} failed after {len(chunks)} chunk(s): {error}",
                provider_id=provider.provider_id,
                model=model,
                chunks_received=len(chunks),
                partial_content="".join(chunks),
                original_error=error,
            ) from e

        completion = "".join(chunks)
        if usage is None:
            usage = TokenUsage.estimate(request.messages, completion)
        return ChatResponse(
            content="",
            usage=usage,
            provider_id=provider.provider_id,
            model=model,
            metadata={"chunks_received": len(chunks)},
        )

    @staticmethod
    def _normalize_error(
        error: BaseException, provider_id: str, model: str, timeout: float
    ) -> LLMProviderError:
        if isinstance(error, LLMProviderError):
            return error
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ProviderTimeoutError(
                f"No response within {timeout:g}s",
                provider_id=provider_id,
                timeout_seconds=timeout,
                model=model,
            )
        return parse_provider_error(error, provider_id, model)

    def _complete(
        self,
        provider_id: str,
        model: str,
        request: ChatRequest,
        response: ChatResponse,
        tries: int,
        attempts: List[ProviderAttempt],
    ) -> ChatResponse:
        usage = response.usage or TokenUsage.estimate(request.messages, response.content)

        self.health_monitor.record_success(provider_id)
        self.cost_tracker.record_usage(provider_id, model, usage)

        response.usage = usage
        response.provider_id = provider_id
        response.model = response.model or model
        response.attempts = tries
        if len(attempts) > 1:
            response.metadata["fallback_from"] = [
                a.provider_id for a in attempts[:-1]
            ]

        log_event(
            "chat_succeeded",
            {
                "provider_id": provider_id,
                "model": model,
                "attempts": tries,
                "streaming": request.streaming,
                "total_tokens": usage.total_tokens,
                "tokens_estimated": usage.estimated,
                "candidates_considered": len(attempts),
            },
        )
        return response

    # ------------------------------------------------------------------
    # Registration and introspection
    # ------------------------------------------------------------------

    def register_provider(
        self, provider: BaseLLMProvider, replace: bool = False
    ) -> Result[None, str]:
        return self.registry.register(provider, replace=replace)

    def get_provider_health_status(self) -> List[ProviderHealth]:
        """Health of every registered provider, in registration order."""
        return [self.health_monitor.get_provider_health(pid) for pid in self.registry.list_ids()]

    def get_usage_statistics(self) -> List[ProviderUsage]:
        return self.cost_tracker.get_all_usage()

    def get_cost_summary(self) -> CostSummary:
        return self.cost_tracker.get_summary()

    # ------------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------------

    def set_permission_level(self, level: str) -> Result[PermissionLevel, str]:
        try:
            return Success(self.permissions.set_permission_level(level))
        except ValueError:
            return validation_error(
                f"Invalid permission level: {level}",
                {"allowed": [p.value for p in PermissionLevel]},
            )

    def disable_provider(self, provider_id: str) -> Result[None, str]:
        if provider_id not in self.registry:
            return not_found_error(f"Unknown provider: {provider_id}")
        self.health_monitor.disable_provider(provider_id)
        return Success(None)

    def enable_provider(self, provider_id: str) -> Result[None, str]:
        if provider_id not in self.registry:
            return not_found_error(f"Unknown provider: {provider_id}")
        self.health_monitor.enable_provider(provider_id)
        return Success(None)

    def reset_usage(self, provider_id: str, model: Optional[str] = None) -> int:
        return self.cost_tracker.reset_usage(provider_id, model)

    def clear_alerts(self, provider_id: Optional[str] = None) -> int:
        return self.cost_tracker.clear_alerts(provider_id)

    async def rotate_key(self) -> Result[int, str]:
        return await self.credentials.rotate_key()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist_state(self) -> Result[None, str]:
        """Write health and usage snapshots to the snapshot store."""
        if self.snapshot_store is None:
            return validation_error("No snapshot store configured")

        result = await self.snapshot_store.save_health(self.health_monitor.export_health_data())
        if result.is_failure():
            return result
        return await self.snapshot_store.save_usage(self.cost_tracker.export_data())

    async def restore_state(self) -> Result[Dict[str, int], str]:
        """
        Load health and usage snapshots, if any were saved.

        Returns:
            Result with counts of restored health records and usage rows
        """
        if self.snapshot_store is None:
            return validation_error("No snapshot store configured")

        health_result = await self.snapshot_store.load_health()
        if health_result.is_failure():
            return health_result
        usage_result = await self.snapshot_store.load_usage()
        if usage_result.is_failure():
            return usage_result

        restored = {"health": 0, "usage": 0}
        health_data = health_result.unwrap()
        if health_data:
            restored["health"] = self.health_monitor.import_health_data(health_data)
        usage_data = usage_result.unwrap()
        if usage_data:
            self.cost_tracker.import_data(usage_data)
            restored["usage"] = len(usage_data.get("usage") or {})

        log_event("state_restored", restored)
        return Success(restored)
