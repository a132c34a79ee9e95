from enum import StrEnum


class Platform(StrEnum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    TWITTER = "twitter"


class DestinationType(StrEnum):
    FACEBOOK_PAGE = "facebook_page"
    INSTAGRAM_BUSINESS = "instagram_business"
    TIKTOK_ACCOUNT = "tiktok_account"
    TWITTER_ACCOUNT = "twitter_account"


DESTINATION_PLATFORMS: dict[DestinationType, Platform] = {
    DestinationType.FACEBOOK_PAGE: Platform.FACEBOOK,
    DestinationType.INSTAGRAM_BUSINESS: Platform.INSTAGRAM,
    DestinationType.TIKTOK_ACCOUNT: Platform.TIKTOK,
    DestinationType.TWITTER_ACCOUNT: Platform.TWITTER,
}

# Platforms whose jobs are addressed to a concrete account/page id rather than "me".
ADDRESSED_PLATFORMS = frozenset({Platform.FACEBOOK, Platform.INSTAGRAM})

CAPTION_LIMITS: dict[Platform, int] = {
    Platform.FACEBOOK: 5000,
    Platform.INSTAGRAM: 2200,
    Platform.TIKTOK: 2200,
    Platform.TWITTER: 280,
}


def platform_for_destination_type(destination_type: str) -> Platform:
    try:
        return DESTINATION_PLATFORMS[DestinationType(destination_type)]
    except ValueError as exc:
        raise ValueError(f"Unknown destination type '{destination_type}'") from exc
