"""
Publish executor: performs the external post for one content item and returns its URL.
FacebookPublishExecutor posts to a Page through the Graph API.
- No media: POST /{page}/feed with the message.
- Image media (by URL): /photos published=false for each image, then /feed with attached_media.
- Failures (HTTP error, timeout, missing post id) raise PublishExecutionError with the platform message.
"""
from typing import List, Optional, Protocol, Tuple

import httpx

from app.config import Settings
from app.errors import PublishExecutionError
from app.logging_config import get_logger
from app.schemas.content import ContentRecord

logger = get_logger(__name__)

GRAPH_BASE = "https://graph.facebook.com"
HTTP_TIMEOUT = 30.0


class PublishExecutor(Protocol):
    async def publish(self, content: ContentRecord) -> str:
        """Post `content` on its platform; return the public URL. Raise PublishExecutionError on failure."""
        ...


def build_message(content: ContentRecord) -> str:
    message = (content.body or "").strip() or content.title
    if content.tags:
        hashtags = " ".join(t if t.startswith("#") else f"#{t}" for t in content.tags)
        message = f"{message}\n\n{hashtags}".strip()
    return message


def _error_message(resp: httpx.Response) -> str:
    try:
        err_body = resp.json()
        return err_body.get("error", {}).get("message", resp.text) or resp.text
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"


def _object_id(resp: httpx.Response) -> Optional[str]:
    data = resp.json()
    value = data.get("id") or data.get("post_id")
    return str(value) if value else None


class FacebookPublishExecutor:
    """Graph API publisher for the Page configured by FACEBOOK_PAGE_ID / FACEBOOK_ACCESS_TOKEN."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.page_id = settings.facebook_page_id
        self.access_token = settings.facebook_access_token
        self.api_version = settings.facebook_api_version
        self.max_retries = settings.facebook_max_retries
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.page_id and self.access_token)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=self._transport)

    async def publish(self, content: ContentRecord) -> str:
        if not self.configured:
            raise PublishExecutionError("facebook_not_configured", detail="FACEBOOK_PAGE_ID / FACEBOOK_ACCESS_TOKEN not set")

        message = build_message(content)
        last_error: Optional[str] = None
        http_status: Optional[int] = None
        post_id: Optional[str] = None
        for attempt in range(self.max_retries + 1):
            if content.media_urls:
                post_id, last_error, http_status = await self._publish_photos(content.media_urls, message)
            else:
                post_id, last_error, http_status = await self._publish_feed(message)
            if post_id and not last_error:
                break
            # 4xx other than throttling will not improve on retry
            if http_status is not None and 400 <= http_status < 500 and http_status != 429:
                break
            if attempt < self.max_retries:
                logger.warning("facebook_publish.retry", content_id=str(content.id), attempt=attempt + 1, error=last_error)

        if last_error or not post_id:
            logger.warning("facebook_publish.fail", content_id=str(content.id), http_status=http_status, error=last_error)
            raise PublishExecutionError(detail=last_error or "post_id_missing", http_status=http_status)

        logger.info("facebook_publish.success", content_id=str(content.id), post_id=post_id)
        return f"https://www.facebook.com/{post_id}"

    async def _publish_feed(
        self,
        message: str,
        attached_media: Optional[List[str]] = None,
    ) -> Tuple[Optional[str], Optional[str], Optional[int]]:
        """POST /feed. Returns (post_id, error, http_status)."""
        url = f"{GRAPH_BASE}/{self.api_version}/{self.page_id}/feed"
        payload = {"message": message, "access_token": self.access_token}
        for i, media_fbid in enumerate(attached_media or []):
            payload[f"attached_media[{i}]"] = f'{{"media_fbid":"{media_fbid}"}}'
        try:
            async with self._client() as client:
                resp = await client.post(url, data=payload)
        except httpx.TimeoutException as e:
            return None, f"Timeout: {e}", None
        except httpx.RequestError as e:
            return None, str(e) or type(e).__name__, None
        if resp.status_code != 200:
            return None, _error_message(resp), resp.status_code
        post_id = _object_id(resp)
        if not post_id:
            return None, "post_id_missing", resp.status_code
        return post_id, None, resp.status_code

    async def _publish_photos(
        self,
        media_urls: List[str],
        message: str,
    ) -> Tuple[Optional[str], Optional[str], Optional[int]]:
        """Upload each image unpublished, then one /feed post that attaches them all."""
        url = f"{GRAPH_BASE}/{self.api_version}/{self.page_id}/photos"
        photo_ids: List[str] = []
        try:
            async with self._client() as client:
                for media_url in media_urls:
                    data = {"access_token": self.access_token, "url": media_url, "published": "false"}
                    resp = await client.post(url, data=data)
                    if resp.status_code != 200:
                        return None, _error_message(resp), resp.status_code
                    photo_id = _object_id(resp)
                    if not photo_id:
                        return None, "photo_upload_no_id", resp.status_code
                    photo_ids.append(photo_id)
        except httpx.TimeoutException as e:
            return None, f"Timeout: {e}", None
        except httpx.RequestError as e:
            return None, str(e) or type(e).__name__, None
        return await self._publish_feed(message, attached_media=photo_ids)
