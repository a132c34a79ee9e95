import logging

import httpx

from app.domain.platforms import Platform
from app.integrations.channel_adapters.base_adapter import (
    AdapterAuthError,
    AdapterError,
    AdapterPermanentError,
    AdapterResolutionError,
    AdapterRetryableError,
    BaseChannelAdapter,
    PublishResult,
)
from app.integrations.channel_adapters.facebook_adapter import FacebookAdapter
from app.integrations.channel_adapters.instagram_adapter import InstagramAdapter
from app.integrations.channel_adapters.tiktok_adapter import TikTokAdapter
from app.integrations.channel_adapters.twitter_adapter import TwitterAdapter

logger = logging.getLogger(__name__)

ADAPTER_REGISTRY: dict[Platform, type[BaseChannelAdapter]] = {
    Platform.FACEBOOK: FacebookAdapter,
    Platform.INSTAGRAM: InstagramAdapter,
    Platform.TIKTOK: TikTokAdapter,
    Platform.TWITTER: TwitterAdapter,
}


def get_channel_adapter(platform: Platform | str, *, http_client: httpx.AsyncClient | None = None) -> BaseChannelAdapter:
    try:
        normalized_platform = Platform(str(platform).strip().lower())
    except ValueError as exc:
        logger.error("channel_adapter_resolution_failed platform=%s", platform)
        raise AdapterResolutionError(f"Unsupported platform: {platform}") from exc
    return ADAPTER_REGISTRY[normalized_platform](http_client=http_client)


__all__ = [
    "ADAPTER_REGISTRY",
    "AdapterResolutionError",
    "AdapterError",
    "AdapterRetryableError",
    "AdapterPermanentError",
    "AdapterAuthError",
    "BaseChannelAdapter",
    "PublishResult",
    "get_channel_adapter",
]
