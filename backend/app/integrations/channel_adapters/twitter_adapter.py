from typing import Any

from app.core.config import settings
from app.domain.platforms import CAPTION_LIMITS, Platform
from app.integrations.channel_adapters.base_adapter import (
    AdapterPermanentError,
    BaseChannelAdapter,
    ProviderErrorDetails,
    PublishResult,
)


def truncate_tweet(text: str, max_length: int = CAPTION_LIMITS[Platform.TWITTER]) -> str:
    normalized = (text or "").strip()
    if len(normalized) <= max_length:
        return normalized
    return normalized[: max_length - 3].rstrip() + "..."


class TwitterAdapter(BaseChannelAdapter):
    platform = Platform.TWITTER

    @classmethod
    def get_capabilities(cls) -> dict:
        return {**super().get_capabilities(), "image": False}

    def parse_error(self, payload: dict[str, Any]) -> ProviderErrorDetails:
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            return ProviderErrorDetails(
                code=str(first.get("code") or first.get("type") or "") or None,
                message=str(first.get("message") or first.get("detail") or ""),
            )
        return ProviderErrorDetails(
            code=str(payload.get("title") or payload.get("type") or "") or None,
            message=str(payload.get("detail") or ""),
        )

    async def publish(
        self,
        *,
        access_token: str,
        caption: str,
        media_urls: list[str],
        media_mime_types: list[str],
        platform_address: str | None = None,
    ) -> PublishResult:
        text = truncate_tweet(caption)
        if not text:
            raise AdapterPermanentError("X post text is empty")

        response = await self._send(
            "POST",
            f"{settings.x_api_base_url}/tweets",
            headers={"Authorization": f"Bearer {access_token}"},
            json={"text": text},
        )
        payload = self.raise_for_response(response)
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        external_post_id = str(data.get("id") or "")
        if not external_post_id:
            raise AdapterPermanentError("X publish response missing tweet id")
        return PublishResult(
            external_post_id=external_post_id,
            post_url=f"https://x.com/i/web/status/{external_post_id}",
        )
