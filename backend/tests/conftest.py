import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("PUBLISH_QUEUE_BACKEND", "memory")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "test-token-encryption-key")

import uuid
from collections.abc import Callable

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.services.billing_service import UsageRecorder
from app.application.services.publish_worker import PublishWorker
from app.domain import models  # noqa: F401
from app.domain.models.destination import Destination
from app.domain.models.integration import Integration
from app.domain.models.media import Media, PostMedia
from app.domain.models.post import Post
from app.domain.models.post_caption import PostCaption
from app.domain.models.post_destination import PostDestination
from app.domain.models.product import PostProduct, Product
from app.domain.platforms import DestinationType, Platform
from app.infrastructure.db.base import Base
from app.integrations.channel_adapters import PublishResult
from app.integrations.platform_rate_limit_service import PlatformRateLimiter
from app.integrations.publish_queue import InMemoryPublishQueue

DESTINATION_TYPES = {
    Platform.FACEBOOK: DestinationType.FACEBOOK_PAGE,
    Platform.INSTAGRAM: DestinationType.INSTAGRAM_BUSINESS,
    Platform.TIKTOK: DestinationType.TIKTOK_ACCOUNT,
    Platform.TWITTER: DestinationType.TWITTER_ACCOUNT,
}


class FakeWindowCounter:
    def __init__(self) -> None:
        self.values: dict[str, int] = {}

    def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key], window_seconds


class FakeJobLock:
    def __init__(self) -> None:
        self.held: dict[str, str] = {}

    def acquire(self, job_key: str) -> str | None:
        if job_key in self.held:
            return None
        token = uuid.uuid4().hex
        self.held[job_key] = token
        return token

    def release(self, job_key: str, token: str) -> None:
        if self.held.get(job_key) == token:
            del self.held[job_key]


class FakeRedis:
    """Just enough of the redis client for pending-key bookkeeping."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def set(self, key: str, value: str, *, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


class FakeAdapter:
    """Records publish calls; returns queued outcomes in order, then a default result."""

    def __init__(self, platform: Platform) -> None:
        self.platform = platform
        self.calls: list[dict] = []
        self.outcomes: list[PublishResult | Exception] = []

    async def publish(self, **kwargs) -> PublishResult:
        self.calls.append(kwargs)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return PublishResult(external_post_id=f"{self.platform.value}-{len(self.calls)}", post_url=None)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def window_counter() -> FakeWindowCounter:
    return FakeWindowCounter()


@pytest.fixture
def rate_limiter(window_counter) -> PlatformRateLimiter:
    return PlatformRateLimiter(
        window_counter,
        limits={"facebook": 200, "instagram": 200, "tiktok": 6, "twitter": 50},
        default_limit=100,
        window_seconds=60,
    )


@pytest.fixture
def job_lock() -> FakeJobLock:
    return FakeJobLock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def queue() -> InMemoryPublishQueue:
    return InMemoryPublishQueue()


@pytest.fixture
def fake_adapters() -> dict[Platform, FakeAdapter]:
    return {platform: FakeAdapter(platform) for platform in Platform}


@pytest.fixture
def usage_recorder(session_factory) -> UsageRecorder:
    return UsageRecorder(session_factory)


@pytest.fixture
def worker(session_factory, rate_limiter, job_lock, usage_recorder, fake_adapters, queue) -> PublishWorker:
    publish_worker = PublishWorker(
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        job_lock=job_lock,
        usage_recorder=usage_recorder,
        adapter_resolver=lambda platform: fake_adapters[Platform(platform)],
    )
    queue.on_deliver(publish_worker.process)
    return publish_worker


@pytest.fixture
def make_post(db_session) -> Callable[..., Post]:
    """Create a post with one destination per platform, captions and a primary product."""

    def _make_post(
        *,
        platforms: tuple[Platform, ...] = (Platform.FACEBOOK, Platform.TIKTOK),
        status: str = "draft",
        tenant_id: uuid.UUID | None = None,
        captions: dict[Platform, str] | None = None,
        media: tuple[tuple[str, str], ...] = (("posts/cover.jpg", "image/jpeg"), ("posts/clip.mp4", "video/mp4")),
        with_product: bool = True,
        destination_tokens: bool = False,
    ) -> Post:
        tenant = tenant_id or uuid.uuid4()
        client = uuid.uuid4()
        caption_texts = captions if captions is not None else {platform: f"Hello {platform.value}" for platform in platforms}

        post = Post(tenant_id=tenant, client_id=client, status=status)
        for position, (platform, text) in enumerate(caption_texts.items()):
            post.captions.append(
                PostCaption(platform=platform.value, caption=text, include_link=with_product, position=position)
            )
        for position, (reference, mime_type) in enumerate(media):
            item = Media(tenant_id=tenant, storage_reference=reference, mime_type=mime_type)
            db_session.add(item)
            db_session.flush()
            post.media.append(PostMedia(media_id=item.id, position=position))
        if with_product:
            product = Product(tenant_id=tenant, slug=f"sneaker-{uuid.uuid4().hex[:6]}", name="Sneaker")
            db_session.add(product)
            db_session.flush()
            post.products.append(PostProduct(product_id=product.id, is_primary=True))

        for platform in platforms:
            integration = Integration(
                tenant_id=tenant,
                client_id=client,
                provider=platform.value,
                external_id=f"{platform.value}-user",
                access_token=f"{platform.value}-integration-token",
            )
            db_session.add(integration)
            db_session.flush()
            destination = Destination(
                tenant_id=tenant,
                client_id=client,
                integration_id=integration.id,
                type=DESTINATION_TYPES[platform].value,
                external_id=f"{platform.value}-account-1",
                name=f"{platform.value} account",
                access_token=f"{platform.value}-page-token" if destination_tokens else None,
            )
            db_session.add(destination)
            db_session.flush()
            post.destinations.append(PostDestination(destination_id=destination.id))

        db_session.add(post)
        db_session.commit()
        return post

    return _make_post


def destination_row(db_session, post: Post, platform: Platform) -> PostDestination:
    db_session.expire_all()
    for row in db_session.get(Post, post.id).destinations:
        if row.destination.type == DESTINATION_TYPES[platform].value:
            return row
    raise AssertionError(f"No destination for {platform}")


@pytest.fixture
def destination_for(db_session) -> Callable[[Post, Platform], PostDestination]:
    return lambda post, platform: destination_row(db_session, post, platform)
