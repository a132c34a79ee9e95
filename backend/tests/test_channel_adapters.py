import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from app.domain.platforms import Platform
from app.integrations.channel_adapters import (
    ADAPTER_REGISTRY,
    AdapterAuthError,
    AdapterPermanentError,
    AdapterResolutionError,
    AdapterRetryableError,
    get_channel_adapter,
)
from app.integrations.channel_adapters.facebook_adapter import FacebookAdapter
from app.integrations.channel_adapters.instagram_adapter import InstagramAdapter
from app.integrations.channel_adapters.tiktok_adapter import TikTokAdapter, pick_privacy_level, pick_video_url
from app.integrations.channel_adapters.twitter_adapter import TwitterAdapter, truncate_tweet


def _client(handler, requests: list[httpx.Request]) -> httpx.AsyncClient:
    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(_record))


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def _publish(adapter, **overrides):
    kwargs = {
        "access_token": "token-1",
        "caption": "Hello world",
        "media_urls": [],
        "media_mime_types": [],
        "platform_address": None,
    }
    kwargs.update(overrides)
    return asyncio.run(adapter.publish(**kwargs))


def test_registry_covers_every_platform():
    assert set(ADAPTER_REGISTRY) == set(Platform)
    assert isinstance(get_channel_adapter("twitter"), TwitterAdapter)
    with pytest.raises(AdapterResolutionError):
        get_channel_adapter("myspace")


def test_caption_limits_are_exposed_per_adapter():
    assert FacebookAdapter.get_capabilities()["max_length"] == 5000
    assert InstagramAdapter.get_capabilities()["max_length"] == 2200
    assert TikTokAdapter.get_capabilities()["video"] is True
    assert TwitterAdapter.get_capabilities()["max_length"] == 280


def test_facebook_posts_first_image_to_page_photos():
    requests: list[httpx.Request] = []
    client = _client(lambda request: httpx.Response(200, json={"id": "photo-1", "post_id": "123_456"}), requests)

    result = _publish(
        FacebookAdapter(http_client=client),
        media_urls=["https://cdn.example/a.jpg", "https://cdn.example/b.jpg"],
        media_mime_types=["image/jpeg", "image/jpeg"],
        platform_address="123",
    )

    assert requests[0].url.path == "/v18.0/123/photos"
    assert _form(requests[0]) == {
        "url": "https://cdn.example/a.jpg",
        "caption": "Hello world",
        "access_token": "token-1",
    }
    assert result.external_post_id == "123_456"
    assert result.post_url == "https://www.facebook.com/123/posts/456"


def test_facebook_text_only_goes_to_feed_without_page_url():
    requests: list[httpx.Request] = []
    client = _client(lambda request: httpx.Response(200, json={"id": "999_1"}), requests)

    result = _publish(FacebookAdapter(http_client=client))

    assert requests[0].url.path == "/v18.0/me/feed"
    assert _form(requests[0])["message"] == "Hello world"
    assert result.external_post_id == "999_1"
    assert result.post_url is None


@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(401, AdapterAuthError), (403, AdapterAuthError), (429, AdapterRetryableError), (503, AdapterRetryableError), (400, AdapterPermanentError)],
)
def test_facebook_http_errors_are_classified(status_code, expected):
    body = {"error": {"message": "Boom", "code": 190, "error_subcode": 463, "fbtrace_id": "Trace1"}}
    client = _client(lambda request: httpx.Response(status_code, json=body), [])

    with pytest.raises(expected) as exc_info:
        _publish(FacebookAdapter(http_client=client), platform_address="123")

    assert str(exc_info.value) == "facebook error [190/463]: Boom (trace_id=Trace1)"


def test_network_failure_is_retryable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AdapterRetryableError) as exc_info:
        _publish(FacebookAdapter(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))))
    assert "network_error" in str(exc_info.value)


def test_instagram_creates_container_then_publishes():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/media"):
            return httpx.Response(200, json={"id": "container-1"})
        if request.url.path.endswith("/media_publish"):
            return httpx.Response(200, json={"id": "ig-media-1"})
        return httpx.Response(200, json={"permalink": "https://www.instagram.com/p/abc/"})

    result = _publish(
        InstagramAdapter(http_client=_client(handler, requests)),
        media_urls=["https://cdn.example/a.jpg"],
        media_mime_types=["image/jpeg"],
        platform_address="1789",
    )

    assert [request.url.path for request in requests] == [
        "/v18.0/1789/media",
        "/v18.0/1789/media_publish",
        "/v18.0/ig-media-1",
    ]
    assert _form(requests[0])["image_url"] == "https://cdn.example/a.jpg"
    assert _form(requests[1])["creation_id"] == "container-1"
    assert result.external_post_id == "ig-media-1"
    assert result.post_url == "https://www.instagram.com/p/abc/"


def test_instagram_requires_media_and_account():
    with pytest.raises(AdapterPermanentError):
        _publish(InstagramAdapter(http_client=_client(lambda request: httpx.Response(500), [])), platform_address="1789")
    with pytest.raises(AdapterPermanentError):
        _publish(
            InstagramAdapter(http_client=_client(lambda request: httpx.Response(500), [])),
            media_urls=["https://cdn.example/a.jpg"],
            media_mime_types=["image/jpeg"],
        )


def test_twitter_truncates_to_limit_and_builds_status_url():
    requests: list[httpx.Request] = []
    client = _client(lambda request: httpx.Response(201, json={"data": {"id": "1790", "text": "..."}}), requests)

    result = _publish(TwitterAdapter(http_client=client), caption="x" * 300)

    sent = json.loads(requests[0].content)
    assert requests[0].url == "https://api.x.com/2/tweets"
    assert requests[0].headers["Authorization"] == "Bearer token-1"
    assert len(sent["text"]) == 280
    assert sent["text"].endswith("...")
    assert result.post_url == "https://x.com/i/web/status/1790"


def test_truncate_tweet_keeps_short_text():
    assert truncate_tweet("  short  ") == "short"


def test_twitter_error_payload_is_described():
    body = {"title": "Forbidden", "detail": "You are not permitted to create a Tweet."}
    client = _client(lambda request: httpx.Response(403, json=body), [])
    with pytest.raises(AdapterAuthError) as exc_info:
        _publish(TwitterAdapter(http_client=client))
    assert str(exc_info.value) == "twitter error [Forbidden]: You are not permitted to create a Tweet."


def test_tiktok_without_video_fails_before_any_request():
    requests: list[httpx.Request] = []
    client = _client(lambda request: httpx.Response(200, json={}), requests)

    with pytest.raises(AdapterPermanentError) as exc_info:
        _publish(
            TikTokAdapter(http_client=client),
            media_urls=["https://cdn.example/a.jpg"],
            media_mime_types=["image/jpeg"],
        )

    assert "no video" in str(exc_info.value)
    assert requests == []


def test_tiktok_pulls_first_video_with_preferred_privacy():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/creator_info/query/"):
            return httpx.Response(
                200,
                json={
                    "data": {"privacy_level_options": ["FOLLOWER_OF_CREATOR", "PUBLIC_TO_EVERYONE"]},
                    "error": {"code": "ok", "message": "", "log_id": "log-1"},
                },
            )
        return httpx.Response(
            200,
            json={"data": {"publish_id": "v_pub_1"}, "error": {"code": "ok", "message": "", "log_id": "log-2"}},
        )

    result = _publish(
        TikTokAdapter(http_client=_client(handler, requests)),
        media_urls=["https://cdn.example/a.jpg", "https://cdn.example/clip.mp4"],
        media_mime_types=["image/jpeg", "video/mp4"],
    )

    init_body = json.loads(requests[1].content)
    assert requests[1].url.path == "/v2/post/publish/content/init/"
    assert init_body["post_info"]["privacy_level"] == "PUBLIC_TO_EVERYONE"
    assert init_body["post_info"]["title"] == "Hello world"
    assert init_body["source_info"] == {"source": "PULL_FROM_URL", "video_url": "https://cdn.example/clip.mp4"}
    assert result.external_post_id == "v_pub_1"
    assert result.post_url is None


def test_tiktok_envelope_errors_are_classified():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": {}, "error": {"code": "access_token_invalid", "message": "Token expired", "log_id": "L9"}},
        )

    with pytest.raises(AdapterAuthError) as exc_info:
        _publish(
            TikTokAdapter(http_client=_client(handler, [])),
            media_urls=["https://cdn.example/clip.mp4"],
            media_mime_types=["video/mp4"],
        )
    assert str(exc_info.value) == "tiktok error [access_token_invalid]: Token expired (trace_id=L9)"


def test_tiktok_video_and_privacy_selection_helpers():
    assert pick_video_url(["https://cdn.example/clip.MOV?sig=1"], [""]) == "https://cdn.example/clip.MOV?sig=1"
    assert pick_video_url(["https://cdn.example/clip.mp4"], ["image/jpeg"]) is None
    assert pick_privacy_level(["SELF_ONLY", "MUTUAL_FOLLOW_FRIENDS"]) == "SELF_ONLY"
    assert pick_privacy_level(["MUTUAL_FOLLOW_FRIENDS", "PUBLIC_TO_EVERYONE"]) == "PUBLIC_TO_EVERYONE"
    assert pick_privacy_level([]) == "SELF_ONLY"
