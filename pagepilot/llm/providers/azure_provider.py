"""
Azure OpenAI adapter.

The deployment URL (``https://<resource>.openai.azure.com/openai/deployments/<name>``)
is stored alongside the key and arrives as ``endpoint``; the deployment,
not the payload, decides the model.
"""

from typing import Any, Dict, List, Optional

from ..base_provider import ImagePolicy
from ..constants import ProviderDefaults, ProviderId
from ..exceptions import ProviderConfigurationError
from ..types import LLMMessage
from .openai_compatible_provider import OpenAICompatibleProvider


class AzureOpenAIProvider(OpenAICompatibleProvider):
    def __init__(
        self,
        provider_id: str = ProviderId.AZURE.value,
        name: str = "Azure OpenAI",
        default_model: str = ProviderDefaults.OPENAI_MODEL,
        *,
        api_version: str = ProviderDefaults.AZURE_API_VERSION,
        image_policy: ImagePolicy = ImagePolicy.SUPPORTED,
        timeout_seconds: float = 300,
    ):
        super().__init__(
            provider_id,
            name,
            "",
            default_model,
            image_policy=image_policy,
            timeout_seconds=timeout_seconds,
        )
        self.api_version = api_version

    def _build_headers(self, api_key: str) -> Dict[str, str]:
        return {"Content-Type": "application/json", "api-key": api_key}

    def _build_url(self, endpoint: Optional[str]) -> str:
        if not endpoint:
            raise ProviderConfigurationError(
                "Azure OpenAI needs a deployment endpoint",
                provider_id=self.provider_id,
                config_field="endpoint",
            )
        return f"{endpoint.rstrip('/')}/chat/completions"

    def _build_params(self, endpoint: Optional[str]) -> Optional[Dict[str, str]]:
        return {"api-version": self.api_version}

    def _build_payload(
        self, messages: List[LLMMessage], model: str, stream: bool
    ) -> Dict[str, Any]:
        payload = super()._build_payload(messages, model, stream)
        payload.pop("model", None)
        return payload
