from urllib.parse import urlencode

from app.core.config import settings
from app.domain.platforms import Platform

LINK_PREFIXED_PLATFORMS = frozenset({Platform.FACEBOOK.value, Platform.INSTAGRAM.value})


def build_product_link(product_slug: str, platform: str, *, shop_domain: str | None = None) -> str:
    domain = shop_domain or settings.shop_domain
    utm_params = urlencode(
        {
            "utm_source": platform,
            "utm_medium": "social",
            "utm_campaign": "post",
        }
    )
    return f"https://{domain}/p/{product_slug}?{utm_params}"


def append_link_to_caption(caption: str, link: str, platform: str, include_link: bool = True) -> str:
    if not include_link:
        return caption
    if platform.lower() in LINK_PREFIXED_PLATFORMS:
        return f"{caption}\n\n🔗 {link}"
    return f"{caption}\n\n{link}"
