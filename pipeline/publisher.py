"""CDN upload of selected images and placeholder substitution in the article."""

from __future__ import annotations

from datetime import datetime, timezone
import html
import json
import logging
import os
from pathlib import Path
import re
import tempfile
from typing import Any, BinaryIO, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field

from config import CDNSettings, get_cdn_settings
from core import ArticleDraft, ImageRole, JudgedImage, UploadedImage
from storage.cdn import CloudflareImagesClient
from utils.exceptions import ConfigurationError, UploadError

from .prompts import PLACEHOLDERS


logger = logging.getLogger(__name__)

DOWNLOAD_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
SLUG_TOKEN = "ARTICLE_SLUG"


class PublishedMedia(BaseModel):
    """Article body/structured data after images were bound to their slots."""

    body_html: str
    structured_data: str = "{}"
    uploaded: List[UploadedImage] = Field(default_factory=list)
    failed_slots: List[int] = Field(default_factory=list)


def sanitize_image_id(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "_", str(value or ""))


def alt_text_for_slot(title: str, slot_index: int) -> str:
    if slot_index == 0:
        return f"{title} 썸네일"
    return f"{title} 본문 이미지 {slot_index}"


def _tag_pattern(token: str) -> "re.Pattern[str]":
    return re.compile(rf"<img[^>]*src=[\"']?{token}[\"']?[^>]*>", re.IGNORECASE)


def _bind_tag(tag: str, token: str, url: str, alt: str) -> str:
    tag = tag.replace(token, url)
    escaped = html.escape(alt, quote=True)
    if re.search(r"\balt\s*=", tag, flags=re.IGNORECASE):
        return re.sub(r"\balt\s*=\s*([\"']).*?\1", f'alt="{escaped}"', tag, count=1, flags=re.IGNORECASE)
    return re.sub(r"\s*/?>$", f' alt="{escaped}"/>', tag, count=1)


def substitute_placeholders(body_html: str, uploaded: Sequence[UploadedImage]) -> str:
    """
    Bind uploaded images into their placeholder slots.

    Placeholders with no uploaded image lose their whole <img> tag; no
    placeholder token survives in the output.
    """
    by_slot = {image.slot_index: image for image in uploaded}
    result = body_html or ""
    for slot_index, token in enumerate(PLACEHOLDERS):
        pattern = _tag_pattern(token)
        image = by_slot.get(slot_index)
        if image is None:
            result = pattern.sub("", result)
            result = result.replace(token, "")
            continue
        result = pattern.sub(lambda match: _bind_tag(match.group(0), token, image.cdn_url, image.alt_text), result)
        result = result.replace(token, image.cdn_url)
    return result


def substitute_structured_data(structured_data: str, uploaded: Sequence[UploadedImage], slug: str) -> str:
    """Swap placeholder image entries for CDN URLs and fill in the article slug."""
    urls = [image.cdn_url for image in sorted(uploaded, key=lambda item: item.slot_index)]
    try:
        payload = json.loads(structured_data or "{}")
    except json.JSONDecodeError:
        payload = None

    if isinstance(payload, dict):
        if urls:
            payload["image"] = urls
        else:
            payload.pop("image", None)
        text = json.dumps(payload, ensure_ascii=False)
    else:
        by_slot = {image.slot_index: image.cdn_url for image in uploaded}
        text = structured_data or "{}"
        for slot_index, token in enumerate(PLACEHOLDERS):
            text = text.replace(token, by_slot.get(slot_index, ""))
    return text.replace(SLUG_TOKEN, slug)


def _suffix_for(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    return suffix if re.fullmatch(r"\.[a-z0-9]{1,5}", suffix) else ".jpg"


class MediaPublisher:
    """
    Moves selected images to the CDN and rewrites the article around them.

    Each upload downloads the source into a temporary file that is removed
    on every exit path.
    """

    def __init__(
        self,
        cdn: CloudflareImagesClient,
        settings: Optional[CDNSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cdn = cdn
        self.settings = settings or get_cdn_settings()
        self._transport = transport

    async def _download(self, image_url: str, handle: BinaryIO) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.download_timeout),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", image_url, headers={"User-Agent": DOWNLOAD_USER_AGENT}) as response:
                    response.raise_for_status()
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            raise UploadError(f"Image download failed: {exc}", {"url": image_url}) from exc

    async def upload(
        self,
        image_url: str,
        desired_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, str]:
        """
        Download ``image_url`` and push it to the CDN.

        Returns:
            {"cdn_url": ..., "cdn_id": ...}

        Raises:
            ConfigurationError: CDN credentials missing
            UploadError: download or upload failed
        """
        if not self.cdn.is_configured():
            raise ConfigurationError("CDN is not configured", {"provider": self.cdn.name})

        suffix = _suffix_for(image_url)
        fd, temp_path = tempfile.mkstemp(prefix="img_", suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as handle:
                await self._download(image_url, handle)
            with open(temp_path, "rb") as handle:
                result = await self.cdn.upload(
                    handle,
                    filename=Path(temp_path).name,
                    image_id=sanitize_image_id(desired_name) if desired_name else None,
                    metadata=metadata,
                )
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)

        return {"cdn_url": result["delivery_url"], "cdn_id": result["id"]}

    async def publish(self, draft: ArticleDraft, images: Sequence[JudgedImage]) -> PublishedMedia:
        """Upload each slot winner in slot order and substitute placeholders."""
        uploaded: List[UploadedImage] = []
        failed: List[int] = []
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")

        for image in sorted(images, key=lambda item: item.slot_index):
            metadata = {
                "article_title": draft.title,
                "slot": image.slot_type,
                "source": image.context_link or image.link,
            }
            try:
                result = await self.upload(image.link, f"{draft.slug}-{image.slot_type}-{stamp}", metadata)
            except (ConfigurationError, UploadError) as exc:
                logger.warning("Slot %d upload skipped: %s", image.slot_index, exc)
                failed.append(image.slot_index)
                continue
            except Exception as exc:
                logger.exception("Slot %d upload crashed: %s", image.slot_index, exc)
                failed.append(image.slot_index)
                continue

            uploaded.append(
                UploadedImage(
                    slot_index=image.slot_index,
                    role=ImageRole.THUMBNAIL if image.slot_index == 0 else ImageRole.CONTENT,
                    cdn_url=result["cdn_url"],
                    cdn_id=result["cdn_id"],
                    original_url=image.link,
                    alt_text=alt_text_for_slot(draft.title, image.slot_index),
                )
            )

        logger.info("Uploaded %d of %d images for '%s'", len(uploaded), len(images), draft.title)
        return PublishedMedia(
            body_html=substitute_placeholders(draft.body_html, uploaded),
            structured_data=substitute_structured_data(draft.structured_data, uploaded, draft.slug),
            uploaded=uploaded,
            failed_slots=failed,
        )

    async def delete(self, cdn_id: str) -> bool:
        return await self.cdn.delete(cdn_id)
