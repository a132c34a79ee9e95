from typing import Any

from app.core.config import settings
from app.domain.platforms import CAPTION_LIMITS, Platform
from app.integrations.channel_adapters.base_adapter import (
    AdapterPermanentError,
    BaseChannelAdapter,
    ProviderErrorDetails,
    PublishResult,
)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".m4v", ".webm")
DEFAULT_PRIVACY_LEVEL = "PUBLIC_TO_EVERYONE"
FALLBACK_PRIVACY_LEVEL = "SELF_ONLY"


def pick_video_url(media_urls: list[str], media_mime_types: list[str]) -> str | None:
    for index, url in enumerate(media_urls):
        mime_type = media_mime_types[index] if index < len(media_mime_types) else ""
        if mime_type:
            if mime_type.lower().startswith("video/"):
                return url
            continue
        if url.lower().split("?", 1)[0].endswith(VIDEO_EXTENSIONS):
            return url
    return None


def pick_privacy_level(options: list[str]) -> str:
    if DEFAULT_PRIVACY_LEVEL in options:
        return DEFAULT_PRIVACY_LEVEL
    if options:
        return options[0]
    return FALLBACK_PRIVACY_LEVEL


class TikTokAdapter(BaseChannelAdapter):
    """Direct Post via PULL_FROM_URL.

    The init call only returns a publish_id; the final share URL needs status polling,
    which we do not do, so ``post_url`` stays empty.
    """

    platform = Platform.TIKTOK

    @classmethod
    def get_capabilities(cls) -> dict:
        return {**super().get_capabilities(), "text": False, "image": False, "video": True}

    def parse_error(self, payload: dict[str, Any]) -> ProviderErrorDetails:
        error = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error, dict):
            return ProviderErrorDetails(code=None, message="")
        return ProviderErrorDetails(
            code=str(error.get("code") or "") or None,
            message=str(error.get("message") or ""),
            trace_id=error.get("log_id"),
        )

    def _check_envelope(self, payload: dict[str, Any]) -> None:
        details = self.parse_error(payload)
        if details.code and details.code != "ok":
            self.raise_for_provider_error(details)

    @staticmethod
    def _headers(access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=UTF-8",
        }

    async def publish(
        self,
        *,
        access_token: str,
        caption: str,
        media_urls: list[str],
        media_mime_types: list[str],
        platform_address: str | None = None,
    ) -> PublishResult:
        video_url = pick_video_url(media_urls, media_mime_types)
        if not video_url:
            raise AdapterPermanentError("TikTok publish requires a video; no video media attached to post")

        creator_response = await self._send(
            "POST",
            f"{settings.tiktok_api_base_url}/post/publish/creator_info/query/",
            headers=self._headers(access_token),
            json={},
        )
        creator_payload = self.raise_for_response(creator_response)
        self._check_envelope(creator_payload)
        creator_data = creator_payload.get("data") or {}
        privacy_level = pick_privacy_level(list(creator_data.get("privacy_level_options") or []))

        init_response = await self._send(
            "POST",
            f"{settings.tiktok_api_base_url}/post/publish/content/init/",
            headers=self._headers(access_token),
            json={
                "post_info": {
                    "title": caption[: CAPTION_LIMITS[Platform.TIKTOK]],
                    "privacy_level": privacy_level,
                    "disable_comment": False,
                    "disable_duet": False,
                    "disable_stitch": False,
                },
                "source_info": {
                    "source": "PULL_FROM_URL",
                    "video_url": video_url,
                },
            },
        )
        init_payload = self.raise_for_response(init_response)
        self._check_envelope(init_payload)

        publish_id = str((init_payload.get("data") or {}).get("publish_id") or "")
        if not publish_id:
            raise AdapterPermanentError("TikTok publish init response missing publish_id")
        return PublishResult(external_post_id=publish_id, post_url=None)
