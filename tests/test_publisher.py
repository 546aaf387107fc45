from __future__ import annotations

import json
import os
import tempfile

import httpx
import pytest

from config import CDNSettings
from core import ArticleDraft, ImageRole, JudgedImage, UploadedImage
from pipeline.publisher import (
    MediaPublisher,
    alt_text_for_slot,
    sanitize_image_id,
    substitute_placeholders,
    substitute_structured_data,
)
from utils.exceptions import ConfigurationError

from conftest import ARTICLE_BODY, FakeCDN


def _uploaded(slot_index: int) -> UploadedImage:
    return UploadedImage(
        slot_index=slot_index,
        role=ImageRole.THUMBNAIL if slot_index == 0 else ImageRole.CONTENT,
        cdn_url=f"https://cdn.test/img{slot_index}/public",
        cdn_id=f"img{slot_index}",
        original_url=f"https://src.test/{slot_index}.jpg",
        alt_text=alt_text_for_slot("전기차 시장", slot_index),
    )


def _judged(slot_index: int, link: str) -> JudgedImage:
    slot_types = ["thumbnail", "body1", "body2", "body3"]
    return JudgedImage(link=link, slot_index=slot_index, slot_type=slot_types[slot_index], final_score=80)


def _draft() -> ArticleDraft:
    return ArticleDraft(
        title="전기차 시장",
        body_html=ARTICLE_BODY,
        tags=["전기차"],
        slug="ev-market",
        structured_data=json.dumps({"image": ["IMG_THUMBNAIL", "IMG_URL_1"], "@id": "/articles/ARTICLE_SLUG"}),
    )


@pytest.fixture
def temp_files(monkeypatch):
    created = []
    original = tempfile.mkstemp

    def _spy(*args, **kwargs):
        fd, path = original(*args, **kwargs)
        created.append(path)
        return fd, path

    monkeypatch.setattr(tempfile, "mkstemp", _spy)
    return created


def _transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("missing.jpg"):
            return httpx.Response(404)
        return httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"})

    return httpx.MockTransport(handler)


def test_alt_text_per_slot() -> None:
    assert alt_text_for_slot("제목", 0) == "제목 썸네일"
    assert alt_text_for_slot("제목", 2) == "제목 본문 이미지 2"


def test_sanitize_image_id() -> None:
    assert sanitize_image_id("ev market/썸네일-01") == "ev_market____-01"


def test_substitution_leaves_no_placeholder_behind() -> None:
    body = ARTICLE_BODY + " 남은 토큰 IMG_URL_3"
    result = substitute_placeholders(body, [_uploaded(0), _uploaded(2)])

    for token in ("IMG_THUMBNAIL", "IMG_URL_1", "IMG_URL_2", "IMG_URL_3"):
        assert token not in result
    assert result.count("<img") == 2
    assert 'src="https://cdn.test/img0/public"' in result
    assert 'alt="전기차 시장 썸네일"' in result
    assert 'alt="전기차 시장 본문 이미지 2"' in result
    assert result.index("img0") < result.index("img2")


def test_substitution_with_no_images_strips_every_tag() -> None:
    result = substitute_placeholders(ARTICLE_BODY, [])
    assert "<img" not in result
    assert result.count("<p>") == 3


def test_structured_data_substitution() -> None:
    raw = json.dumps({"image": ["IMG_THUMBNAIL", "IMG_URL_1", "IMG_URL_2"], "@id": "/articles/ARTICLE_SLUG"})

    with_images = json.loads(substitute_structured_data(raw, [_uploaded(2), _uploaded(0)], "ev-market"))
    assert with_images["image"] == ["https://cdn.test/img0/public", "https://cdn.test/img2/public"]
    assert with_images["@id"] == "/articles/ev-market"

    without_images = json.loads(substitute_structured_data(raw, [], "ev-market"))
    assert "image" not in without_images

    text = substitute_structured_data("broken IMG_THUMBNAIL ARTICLE_SLUG", [_uploaded(0)], "ev-market")
    assert text == "broken https://cdn.test/img0/public ev-market"


@pytest.mark.asyncio
async def test_publish_uploads_in_slot_order_and_records_failures(temp_files) -> None:
    cdn = FakeCDN()
    publisher = MediaPublisher(cdn, CDNSettings(), transport=_transport())
    images = [
        _judged(2, "https://src.test/two.jpg"),
        _judged(0, "https://src.test/zero.jpg"),
        _judged(1, "https://src.test/missing.jpg"),
    ]

    media = await publisher.publish(_draft(), images)

    assert [item.slot_index for item in media.uploaded] == [0, 2]
    assert media.failed_slots == [1]
    assert media.uploaded[0].role == ImageRole.THUMBNAIL
    assert media.uploaded[1].alt_text == "전기차 시장 본문 이미지 2"
    assert [upload["bytes"] for upload in cdn.uploads] == [b"jpeg-bytes", b"jpeg-bytes"]
    assert cdn.uploads[0]["image_id"].startswith("ev-market-thumbnail-")
    assert cdn.uploads[0]["metadata"]["source"] == "https://src.test/zero.jpg"

    assert "IMG_" not in media.body_html
    assert media.body_html.count("<img") == 2
    structured = json.loads(media.structured_data)
    assert structured["image"] == [item.cdn_url for item in media.uploaded]
    assert structured["@id"] == "/articles/ev-market"

    assert len(temp_files) == 3
    assert not any(os.path.exists(path) for path in temp_files)


@pytest.mark.asyncio
async def test_upload_failure_still_removes_temp_file(temp_files) -> None:
    publisher = MediaPublisher(FakeCDN(fail_ids=("boom",)), CDNSettings(), transport=_transport())

    media = await publisher.publish(
        _draft().model_copy(update={"slug": "boom"}),
        [_judged(0, "https://src.test/zero.jpg")],
    )

    assert media.uploaded == []
    assert media.failed_slots == [0]
    assert len(temp_files) == 1
    assert not os.path.exists(temp_files[0])


@pytest.mark.asyncio
async def test_unconfigured_cdn(temp_files) -> None:
    publisher = MediaPublisher(FakeCDN(configured=False), CDNSettings(), transport=_transport())

    with pytest.raises(ConfigurationError):
        await publisher.upload("https://src.test/zero.jpg", "name")

    media = await publisher.publish(_draft(), [_judged(0, "https://src.test/zero.jpg")])
    assert media.failed_slots == [0]
    assert "<img" not in media.body_html
    assert temp_files == []


@pytest.mark.asyncio
async def test_delete_forwards_to_cdn() -> None:
    cdn = FakeCDN()
    publisher = MediaPublisher(cdn, CDNSettings(), transport=_transport())

    assert await publisher.delete("img0") is True
    assert cdn.deleted == ["img0"]


@pytest.mark.asyncio
async def test_unparseable_image_link_fails_only_its_slot(temp_files) -> None:
    cdn = FakeCDN()
    publisher = MediaPublisher(cdn, CDNSettings(), transport=_transport())
    images = [
        _judged(0, "https://src.test/zero.jpg"),
        _judged(1, "https://src.test/bad\x7f.jpg"),
    ]

    media = await publisher.publish(_draft(), images)

    assert [image.slot_index for image in media.uploaded] == [0]
    assert media.failed_slots == [1]
    assert "IMG_URL_1" not in media.body_html
    assert all(not os.path.exists(path) for path in temp_files)
