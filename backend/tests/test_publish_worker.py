import asyncio
import logging

import httpx
import pytest
from sqlalchemy import select

from app.application.services.billing_service import UsageRecorder
from app.application.services.publish_worker import PublishWorker
from app.application.services.publishing_service import publish_post
from app.core.security import encrypt_secret
from app.domain.models.post import Post
from app.domain.models.usage_event import UsageEvent
from app.domain.platforms import Platform
from app.domain.publish_job import PublishJob
from app.integrations.channel_adapters import AdapterAuthError, AdapterRetryableError, get_channel_adapter


def _publish_and_drain(db_session, queue, post) -> None:
    publish_post(db_session, queue, tenant_id=post.tenant_id, post_id=post.id)
    asyncio.run(queue.drain())
    db_session.expire_all()


def _post_status(db_session, post) -> str:
    db_session.expire_all()
    return db_session.get(Post, post.id).status


def _usage_events(db_session) -> list[UsageEvent]:
    return db_session.execute(select(UsageEvent)).scalars().all()


def test_facebook_and_tiktok_without_video(
    db_session, session_factory, rate_limiter, job_lock, usage_recorder, queue, make_post, destination_for
):
    post = make_post(media=(("posts/cover.jpg", "image/jpeg"),))
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "photo-1", "post_id": "facebook-account-1_777"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    worker = PublishWorker(
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        job_lock=job_lock,
        usage_recorder=usage_recorder,
        adapter_resolver=lambda platform: get_channel_adapter(platform, http_client=client),
    )
    queue.on_deliver(worker.process)

    _publish_and_drain(db_session, queue, post)

    facebook_row = destination_for(post, Platform.FACEBOOK)
    tiktok_row = destination_for(post, Platform.TIKTOK)
    assert facebook_row.status == "published"
    assert facebook_row.external_post_id == "facebook-account-1_777"
    assert facebook_row.post_url == "https://www.facebook.com/facebook-account-1/posts/777"
    assert facebook_row.published_at is not None
    assert tiktok_row.status == "failed"
    assert "no video" in tiktok_row.error
    assert [request.url.host for request in requests] == ["graph.facebook.com"]
    assert _post_status(db_session, post) == "failed"
    assert _usage_events(db_session) == []


def test_all_destinations_published_emits_usage_once(worker, db_session, queue, make_post, fake_adapters):
    post = make_post()

    _publish_and_drain(db_session, queue, post)

    assert _post_status(db_session, post) == "published"
    events = _usage_events(db_session)
    assert len(events) == 1
    assert events[0].event_type == "post_published"
    assert events[0].quantity == 1
    assert events[0].metadata_json == {"post_id": str(post.id), "destinations": 2}
    assert len(fake_adapters[Platform.FACEBOOK].calls) == 1
    assert len(fake_adapters[Platform.TIKTOK].calls) == 1


def test_uncaptioned_destination_does_not_block_publication(worker, db_session, queue, make_post, fake_adapters, destination_for):
    post = make_post(captions={Platform.FACEBOOK: "Only facebook"})

    _publish_and_drain(db_session, queue, post)

    assert destination_for(post, Platform.FACEBOOK).status == "published"
    assert destination_for(post, Platform.TIKTOK).status == "draft"
    assert fake_adapters[Platform.TIKTOK].calls == []
    assert _post_status(db_session, post) == "published"
    assert _usage_events(db_session)[0].metadata_json == {"post_id": str(post.id), "destinations": 2}


def test_transient_failure_is_retried_with_backoff(worker, db_session, queue, make_post, fake_adapters, destination_for):
    post = make_post()
    fake_adapters[Platform.TIKTOK].outcomes = [AdapterRetryableError("tiktok error [internal_error]: busy")]

    _publish_and_drain(db_session, queue, post)

    assert queue.retry_delays == [2]
    tiktok_row = destination_for(post, Platform.TIKTOK)
    assert tiktok_row.status == "published"
    assert tiktok_row.error is None
    assert _post_status(db_session, post) == "published"
    assert len(fake_adapters[Platform.TIKTOK].calls) == 2


def test_transient_failure_keeps_row_publishing_until_last_attempt(
    worker, db_session, queue, make_post, fake_adapters, destination_for
):
    post = make_post(platforms=(Platform.TIKTOK,))
    publish_post(db_session, queue, tenant_id=post.tenant_id, post_id=post.id)
    job = PublishJob.from_payload(queue.pending[0].payload)
    fake_adapters[Platform.TIKTOK].outcomes = [AdapterRetryableError("tiktok error [internal_error]: busy")] * 3

    with pytest.raises(AdapterRetryableError):
        asyncio.run(worker.process(job, attempt=1, max_attempts=3))
    row = destination_for(post, Platform.TIKTOK)
    assert row.status == "publishing"
    assert row.error == "tiktok error [internal_error]: busy"
    assert _post_status(db_session, post) == "publishing"

    with pytest.raises(AdapterRetryableError):
        asyncio.run(worker.process(job, attempt=3, max_attempts=3))
    assert destination_for(post, Platform.TIKTOK).status == "failed"
    assert _post_status(db_session, post) == "failed"


def test_exhausted_retries_fail_only_that_destination(worker, db_session, queue, make_post, fake_adapters, destination_for):
    post = make_post()
    fake_adapters[Platform.TIKTOK].outcomes = [AdapterRetryableError("tiktok error [internal_error]: busy")] * 3

    _publish_and_drain(db_session, queue, post)

    assert queue.retry_delays == [2, 4]
    assert destination_for(post, Platform.FACEBOOK).status == "published"
    assert destination_for(post, Platform.TIKTOK).status == "failed"
    assert _post_status(db_session, post) == "failed"


def test_permanent_failure_then_manual_retry(worker, db_session, queue, make_post, fake_adapters, destination_for):
    post = make_post()
    fake_adapters[Platform.TIKTOK].outcomes = [AdapterAuthError("tiktok error [access_token_invalid]: expired")]

    _publish_and_drain(db_session, queue, post)

    assert queue.retry_delays == []
    assert len(fake_adapters[Platform.TIKTOK].calls) == 1
    assert destination_for(post, Platform.TIKTOK).error == "tiktok error [access_token_invalid]: expired"
    assert _post_status(db_session, post) == "failed"
    assert _usage_events(db_session) == []

    _publish_and_drain(db_session, queue, post)

    assert len(fake_adapters[Platform.FACEBOOK].calls) == 1
    assert len(fake_adapters[Platform.TIKTOK].calls) == 2
    assert destination_for(post, Platform.TIKTOK).status == "published"
    assert _post_status(db_session, post) == "published"
    assert len(_usage_events(db_session)) == 1


def test_redelivered_job_for_published_destination_is_skipped(worker, db_session, queue, make_post, fake_adapters):
    post = make_post(platforms=(Platform.FACEBOOK,))
    publish_post(db_session, queue, tenant_id=post.tenant_id, post_id=post.id)
    job = PublishJob.from_payload(queue.pending[0].payload)
    asyncio.run(queue.drain())

    outcome = asyncio.run(worker.process(job))

    assert outcome.status == "skipped"
    assert outcome.reason == "already_published"
    assert len(fake_adapters[Platform.FACEBOOK].calls) == 1
    assert len(_usage_events(db_session)) == 1


def test_job_key_held_by_another_execution_is_skipped(worker, db_session, queue, make_post, fake_adapters, job_lock):
    post = make_post(platforms=(Platform.FACEBOOK,))
    publish_post(db_session, queue, tenant_id=post.tenant_id, post_id=post.id)
    job = PublishJob.from_payload(queue.pending[0].payload)
    job_lock.held[job.key] = "other-worker"

    outcome = asyncio.run(worker.process(job))

    assert outcome.reason == "lock_not_acquired"
    assert fake_adapters[Platform.FACEBOOK].calls == []
    assert job_lock.held == {job.key: "other-worker"}


def test_duplicate_enqueue_is_ignored_while_pending(db_session, queue, make_post):
    post = make_post(platforms=(Platform.FACEBOOK,))

    publish_post(db_session, queue, tenant_id=post.tenant_id, post_id=post.id)
    publish_post(db_session, queue, tenant_id=post.tenant_id, post_id=post.id)

    assert len(queue.job_keys) == 1


def test_rate_limited_job_never_reaches_adapter(worker, db_session, queue, make_post, fake_adapters, window_counter, destination_for):
    post = make_post(platforms=(Platform.TIKTOK,))
    window_counter.values["rate_limit:tiktok"] = 6

    _publish_and_drain(db_session, queue, post)

    assert fake_adapters[Platform.TIKTOK].calls == []
    assert queue.retry_delays == [2, 4]
    row = destination_for(post, Platform.TIKTOK)
    assert row.status == "failed"
    assert row.error.startswith("Rate limit exceeded for tiktok")


def test_encrypted_token_is_decrypted_before_dispatch(worker, db_session, queue, make_post, fake_adapters):
    post = make_post(platforms=(Platform.FACEBOOK,))
    destination = db_session.get(Post, post.id).destinations[0].destination
    destination.access_token = encrypt_secret("page-secret")
    db_session.commit()

    _publish_and_drain(db_session, queue, post)

    assert fake_adapters[Platform.FACEBOOK].calls[0]["access_token"] == "page-secret"
    assert fake_adapters[Platform.FACEBOOK].calls[0]["platform_address"] == "facebook-account-1"


def test_usage_failure_does_not_change_publish_outcome(
    db_session, session_factory, rate_limiter, job_lock, queue, make_post, fake_adapters, caplog
):
    def broken_factory():
        raise RuntimeError("billing database unavailable")

    worker = PublishWorker(
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        job_lock=job_lock,
        usage_recorder=UsageRecorder(broken_factory),
        adapter_resolver=lambda platform: fake_adapters[Platform(platform)],
    )
    queue.on_deliver(worker.process)
    post = make_post(platforms=(Platform.FACEBOOK,))

    with caplog.at_level(logging.ERROR):
        _publish_and_drain(db_session, queue, post)

    assert _post_status(db_session, post) == "published"
    assert "usage_event_record_failed" in caplog.text
    assert queue.deliveries[-1].error is None
