from urllib.parse import quote, urlparse

from app.core.config import settings


def resolve_media_url(storage_reference: str, *, public_base_url: str | None = None) -> str:
    """Turn a stored media reference into a URL the platforms can fetch.

    Absolute HTTP(S) references pass through; storage keys are served from the public media base.
    """
    normalized_reference = (storage_reference or "").strip()
    if not normalized_reference:
        raise ValueError("Media reference is required")

    parsed = urlparse(normalized_reference)
    if parsed.scheme in {"http", "https"}:
        return normalized_reference
    if parsed.scheme:
        raise ValueError(f"Unsupported media reference scheme '{parsed.scheme}'")

    base_url = (public_base_url or settings.media_public_base_url).rstrip("/")
    return f"{base_url}/{quote(normalized_reference.lstrip('/'))}"
