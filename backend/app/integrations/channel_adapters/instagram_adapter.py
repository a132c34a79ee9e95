from typing import Any

from app.core.config import settings
from app.domain.platforms import Platform
from app.integrations.channel_adapters.base_adapter import (
    AdapterPermanentError,
    BaseChannelAdapter,
    ProviderErrorDetails,
    PublishResult,
    parse_meta_error,
)


class InstagramAdapter(BaseChannelAdapter):
    platform = Platform.INSTAGRAM

    @classmethod
    def get_capabilities(cls) -> dict:
        return {**super().get_capabilities(), "text": False, "video": True}

    def parse_error(self, payload: dict[str, Any]) -> ProviderErrorDetails:
        return parse_meta_error(payload)

    async def publish(
        self,
        *,
        access_token: str,
        caption: str,
        media_urls: list[str],
        media_mime_types: list[str],
        platform_address: str | None = None,
    ) -> PublishResult:
        if not platform_address:
            raise AdapterPermanentError("Instagram business account id is required")
        if not media_urls:
            raise AdapterPermanentError("Instagram publish requires at least one media item")

        media_url = media_urls[0]
        mime_type = media_mime_types[0] if media_mime_types else ""
        container_data = {"caption": caption, "access_token": access_token}
        if mime_type.startswith("video/"):
            container_data.update({"media_type": "REELS", "video_url": media_url})
        else:
            container_data["image_url"] = media_url

        container_response = await self._send(
            "POST",
            f"{settings.meta_graph_api_base_url}/{platform_address}/media",
            data=container_data,
        )
        container_payload = self.raise_for_response(container_response)
        creation_id = str(container_payload.get("id") or "")
        if not creation_id:
            raise AdapterPermanentError("Instagram media container response missing id")

        publish_response = await self._send(
            "POST",
            f"{settings.meta_graph_api_base_url}/{platform_address}/media_publish",
            data={"creation_id": creation_id, "access_token": access_token},
        )
        publish_payload = self.raise_for_response(publish_response)
        external_post_id = str(publish_payload.get("id") or "")
        if not external_post_id:
            raise AdapterPermanentError("Instagram publish response missing media id")

        permalink = await self._fetch_permalink(external_post_id, access_token)
        return PublishResult(external_post_id=external_post_id, post_url=permalink)

    async def _fetch_permalink(self, media_id: str, access_token: str) -> str | None:
        response = await self._send(
            "GET",
            f"{settings.meta_graph_api_base_url}/{media_id}",
            params={"fields": "permalink", "access_token": access_token},
        )
        # The media is already live; a failed lookup only costs us the link.
        if response.status_code >= 400:
            return None
        return self._json_body(response).get("permalink")
