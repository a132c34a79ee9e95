from dataclasses import asdict, dataclass, field
from uuid import UUID

from app.domain.platforms import Platform


def build_job_key(post_id: UUID | str, destination_id: UUID | str) -> str:
    return f"{post_id}-{destination_id}"


@dataclass(frozen=True)
class PublishJob:
    """One post x one destination, as carried by the queue.

    ``access_token`` may still be encrypted; the worker decrypts it just in time.
    """

    post_id: str
    destination_id: str
    platform: Platform
    caption: str
    access_token: str
    integration_id: str
    media_urls: list[str] = field(default_factory=list)
    media_mime_types: list[str] = field(default_factory=list)
    platform_address: str | None = None

    @property
    def key(self) -> str:
        return build_job_key(self.post_id, self.destination_id)

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["platform"] = self.platform.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "PublishJob":
        media_urls = list(payload.get("media_urls") or [])
        media_mime_types = list(payload.get("media_mime_types") or [])
        if len(media_mime_types) != len(media_urls):
            raise ValueError("media_urls and media_mime_types must be parallel lists")
        return cls(
            post_id=str(payload["post_id"]),
            destination_id=str(payload["destination_id"]),
            platform=Platform(payload["platform"]),
            caption=str(payload.get("caption") or ""),
            access_token=str(payload["access_token"]),
            integration_id=str(payload["integration_id"]),
            media_urls=media_urls,
            media_mime_types=media_mime_types,
            platform_address=payload.get("platform_address"),
        )
