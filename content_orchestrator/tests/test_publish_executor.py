"""
Facebook publish executor against a mocked Graph API (httpx.MockTransport).
"""
from typing import List
from urllib.parse import parse_qs
from uuid import uuid4

import httpx
import pytest

from app.config import Settings
from app.errors import PublishExecutionError
from app.schemas.content import ContentRecord, ContentStatus
from app.services.publish_executor import FacebookPublishExecutor, build_message

from conftest import START


def _settings(**overrides) -> Settings:
    values = {
        "FACEBOOK_PAGE_ID": "123",
        "FACEBOOK_ACCESS_TOKEN": "page-token",
        "FACEBOOK_MAX_RETRIES": 2,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _content(**overrides) -> ContentRecord:
    data = {
        "id": uuid4(),
        "owner_id": uuid4(),
        "title": "Launch Post",
        "body": "Our new product is live",
        "content_type": "POST",
        "platform": "facebook",
        "status": ContentStatus.APPROVED,
        "created_at": START,
        "updated_at": START,
    }
    data.update(overrides)
    return ContentRecord(**data)


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_message_includes_hashtags() -> None:
    content = _content(tags=["launch", "#new"])
    assert build_message(content) == "Our new product is live\n\n#launch #new"
    assert build_message(_content(body="")) == "Launch Post"


@pytest.mark.asyncio
async def test_feed_post_returns_facebook_url() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "123_456"})

    executor = FacebookPublishExecutor(_settings(), transport=httpx.MockTransport(handler))
    url = await executor.publish(_content())

    assert url == "https://www.facebook.com/123_456"
    assert len(requests) == 1
    assert requests[0].url.path == "/v20.0/123/feed"
    form = _form(requests[0])
    assert form["message"] == "Our new product is live"
    assert form["access_token"] == "page-token"


@pytest.mark.asyncio
async def test_images_are_uploaded_then_attached() -> None:
    paths: List[str] = []
    forms: List[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        forms.append(_form(request))
        if request.url.path.endswith("/photos"):
            return httpx.Response(200, json={"id": f"photo{len(paths)}"})
        return httpx.Response(200, json={"id": "123_789"})

    executor = FacebookPublishExecutor(_settings(), transport=httpx.MockTransport(handler))
    url = await executor.publish(_content(media_urls=["https://cdn.example/a.jpg", "https://cdn.example/b.jpg"]))

    assert url == "https://www.facebook.com/123_789"
    assert paths == ["/v20.0/123/photos", "/v20.0/123/photos", "/v20.0/123/feed"]
    assert forms[0]["url"] == "https://cdn.example/a.jpg"
    assert forms[0]["published"] == "false"
    assert forms[2]["attached_media[0]"] == '{"media_fbid":"photo1"}'
    assert forms[2]["attached_media[1]"] == '{"media_fbid":"photo2"}'


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    calls: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token."}})

    executor = FacebookPublishExecutor(_settings(), transport=httpx.MockTransport(handler))
    with pytest.raises(PublishExecutionError) as exc_info:
        await executor.publish(_content())

    assert exc_info.value.detail == "Invalid OAuth access token."
    assert exc_info.value.extra["http_status"] == 400
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_error_is_retried() -> None:
    responses = [
        httpx.Response(500, text="upstream error"),
        httpx.Response(200, json={"id": "123_999"}),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    executor = FacebookPublishExecutor(_settings(), transport=httpx.MockTransport(handler))
    assert await executor.publish(_content()) == "https://www.facebook.com/123_999"
    assert responses == []


@pytest.mark.asyncio
async def test_missing_post_id_fails() -> None:
    executor = FacebookPublishExecutor(
        _settings(FACEBOOK_MAX_RETRIES=0),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
    )
    with pytest.raises(PublishExecutionError) as exc_info:
        await executor.publish(_content())
    assert exc_info.value.detail == "post_id_missing"


@pytest.mark.asyncio
async def test_unconfigured_executor_refuses() -> None:
    executor = FacebookPublishExecutor(_settings(FACEBOOK_ACCESS_TOKEN=None))
    assert executor.configured is False
    with pytest.raises(PublishExecutionError) as exc_info:
        await executor.publish(_content())
    assert exc_info.value.code == "facebook_not_configured"
