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


class FacebookAdapter(BaseChannelAdapter):
    platform = Platform.FACEBOOK

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
        node = platform_address or "me"
        if media_urls:
            response = await self._send(
                "POST",
                f"{settings.meta_graph_api_base_url}/{node}/photos",
                data={"url": media_urls[0], "caption": caption, "access_token": access_token},
            )
        else:
            response = await self._send(
                "POST",
                f"{settings.meta_graph_api_base_url}/{node}/feed",
                data={"message": caption, "access_token": access_token},
            )
        payload = self.raise_for_response(response)

        # Photo uploads return the photo id plus the feed story id under post_id.
        external_post_id = str(payload.get("post_id") or payload.get("id") or "")
        if not external_post_id:
            raise AdapterPermanentError("Facebook publish response missing post id")
        return PublishResult(
            external_post_id=external_post_id,
            post_url=self.build_post_url(platform_address, external_post_id),
        )

    @staticmethod
    def build_post_url(page_id: str | None, external_post_id: str) -> str | None:
        if not page_id:
            return None
        story_id = external_post_id.split("_", 1)[-1]
        return f"https://www.facebook.com/{page_id}/posts/{story_id}"
