from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from app.application.services.provider_error_mapper import describe_provider_error, map_provider_error
from app.core.config import settings
from app.domain.platforms import CAPTION_LIMITS, Platform


class AdapterResolutionError(RuntimeError):
    pass


class AdapterError(RuntimeError):
    retryable: bool = True
    error_code: str = "adapter_error"


class AdapterRetryableError(AdapterError):
    retryable = True
    error_code = "adapter_retryable_error"


class AdapterPermanentError(AdapterError):
    retryable = False
    error_code = "adapter_permanent_error"


class AdapterAuthError(AdapterPermanentError):
    error_code = "adapter_auth_error"


@dataclass(frozen=True)
class PublishResult:
    external_post_id: str
    post_url: str | None = None


@dataclass(frozen=True)
class ProviderErrorDetails:
    code: str | None
    message: str
    trace_id: str | None = None


class BaseChannelAdapter(ABC):
    platform: ClassVar[Platform]

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._http_client = http_client

    @classmethod
    def get_capabilities(cls) -> dict:
        return {
            "text": True,
            "image": True,
            "video": False,
            "max_length": CAPTION_LIMITS[cls.platform],
        }

    @abstractmethod
    async def publish(
        self,
        *,
        access_token: str,
        caption: str,
        media_urls: list[str],
        media_mime_types: list[str],
        platform_address: str | None = None,
    ) -> PublishResult:
        raise NotImplementedError

    @abstractmethod
    def parse_error(self, payload: dict[str, Any]) -> ProviderErrorDetails:
        raise NotImplementedError

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a request, reusing an injected client when one was given."""
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=settings.platform_http_timeout_seconds) as client:
                return await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise AdapterRetryableError(
                describe_provider_error(
                    provider=self.platform.value,
                    error_code="network_error",
                    message=str(exc) or exc.__class__.__name__,
                )
            ) from exc

    @staticmethod
    def _json_body(response: httpx.Response) -> dict[str, Any]:
        if not response.headers.get("content-type", "").startswith("application/json"):
            return {}
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def _describe(self, details: ProviderErrorDetails) -> str:
        return describe_provider_error(
            provider=self.platform.value,
            error_code=details.code,
            message=details.message,
            trace_id=details.trace_id,
        )

    def raise_for_response(self, response: httpx.Response) -> dict[str, Any]:
        """Return the JSON body of a successful response or raise the matching adapter error."""
        payload = self._json_body(response)
        if response.status_code < 400:
            return payload

        details = self.parse_error(payload)
        if not details.code:
            details = ProviderErrorDetails(code=str(response.status_code), message=details.message, trace_id=details.trace_id)
        if not details.message:
            details = ProviderErrorDetails(code=details.code, message=response.reason_phrase, trace_id=details.trace_id)
        message = self._describe(details)

        if response.status_code in {401, 403}:
            raise AdapterAuthError(message)
        if response.status_code == 429 or response.status_code >= 500:
            raise AdapterRetryableError(message)
        raise AdapterPermanentError(message)

    def raise_for_provider_error(self, details: ProviderErrorDetails) -> None:
        """Classify an error reported inside a 2xx body by its provider code."""
        normalized = map_provider_error(provider=self.platform.value, error_code=details.code, message=details.message)
        message = self._describe(details)
        if normalized.category == "auth":
            raise AdapterAuthError(message)
        if normalized.retryable:
            raise AdapterRetryableError(message)
        raise AdapterPermanentError(message)


def parse_meta_error(payload: dict[str, Any]) -> ProviderErrorDetails:
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return ProviderErrorDetails(code=None, message="")
    code = error.get("code")
    subcode = error.get("error_subcode")
    if code is not None and subcode is not None:
        code = f"{code}/{subcode}"
    return ProviderErrorDetails(
        code=str(code) if code is not None else None,
        message=str(error.get("message") or ""),
        trace_id=error.get("fbtrace_id"),
    )
