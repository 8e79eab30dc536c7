"""Tests for poster reading through the vision service."""

import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from src.core.exceptions import InvalidConfigError
from src.core.retry import RetryConfig
from src.core.vision_client import (
    VisionExtractionService,
    build_prompt,
    parse_vision_response,
    strip_code_fence,
)

IMAGE_URL = "https://img.example.com/poster_1123.jpg"

VALID_POSTER = {
    "valid": True,
    "title": "中正紀念堂捐血活動",
    "date": "2025-11-23",
    "time": "09:00-17:00",
    "location": "中正紀念堂",
    "city": "臺北",
    "district": "中正區",
    "organizer": "台北捐血中心",
    "gift": "7-11禮券 NT$200",
}


class TestParseVisionResponse:
    """Tests for parse_vision_response()."""

    def test_valid_poster(self):
        drafts = parse_vision_response(json.dumps(VALID_POSTER, ensure_ascii=False), IMAGE_URL)

        assert len(drafts) == 1
        draft = drafts[0]
        assert draft.title == "中正紀念堂捐血活動"
        assert draft.raw_date == "2025-11-23"
        assert draft.city == "台北市"
        assert draft.gift.value == 200
        assert draft.poster_url == IMAGE_URL

    def test_code_fence(self):
        content = "```json\n" + json.dumps(VALID_POSTER) + "\n```"
        assert len(parse_vision_response(content, IMAGE_URL)) == 1

    def test_list_of_posters(self):
        second = {**VALID_POSTER, "date": "2025-11-30", "location": "台北車站"}
        drafts = parse_vision_response(json.dumps([VALID_POSTER, second]), IMAGE_URL)
        assert [d.location for d in drafts] == ["中正紀念堂", "台北車站"]

    def test_invalid_poster(self):
        content = json.dumps({"valid": False, "reason": "活動總表"})
        assert parse_vision_response(content, IMAGE_URL) == []

    def test_gift_object(self):
        content = json.dumps({**VALID_POSTER, "gift": {"name": "電影票", "quantity": 2}})
        assert parse_vision_response(content, IMAGE_URL)[0].gift.name == "電影票"

    def test_unknown_city_dropped(self):
        content = json.dumps({**VALID_POSTER, "city": "北部"})
        assert parse_vision_response(content, IMAGE_URL)[0].city is None

    def test_missing_location_skipped(self):
        content = json.dumps({**VALID_POSTER, "location": None})
        assert parse_vision_response(content, IMAGE_URL) == []

    @pytest.mark.parametrize("content", [None, "", "null", "not json", '[{"title": "no valid flag"}]'])
    def test_malformed(self, content):
        assert parse_vision_response(content, IMAGE_URL) == []

    def test_one_bad_item_discards_response(self):
        content = json.dumps([VALID_POSTER, {"valid": "maybe?"}])
        assert parse_vision_response(content, IMAGE_URL) == []


class TestPrompt:
    """Tests for prompt helpers."""

    def test_build_prompt(self):
        prompt = build_prompt(date(2025, 11, 20))
        assert "2025-11-20" in prompt
        assert "連江縣" in prompt

    def test_strip_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'


# =============================================================================
# Service
# =============================================================================


def _completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(*, content: str | None = None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        client.chat.completions.create = AsyncMock(return_value=_completion(content))
    return client


def _api_error() -> openai.APIError:
    return openai.APIConnectionError(request=httpx.Request("POST", "https://vision.test/chat/completions"))


def _service(clients: list[MagicMock], image_status: int = 200) -> VisionExtractionService:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(image_status, content=b"\xff\xd8fake", headers={"content-type": "image/jpeg"})

    return VisionExtractionService(
        api_keys=[],
        clients=clients,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_config=RetryConfig(
            max_attempts=len(clients) * 2,
            initial_delay=0,
            max_delay=0,
            jitter=0,
            retryable_exceptions=(openai.APIError,),
        ),
    )


class TestVisionExtractionService:
    """Tests for VisionExtractionService."""

    def test_requires_key(self):
        with pytest.raises(InvalidConfigError):
            VisionExtractionService(api_keys=[])

    @pytest.mark.asyncio
    async def test_extract(self):
        client = _client(content=json.dumps(VALID_POSTER))
        service = _service([client])

        drafts = await service.extract(IMAGE_URL, as_of=date(2025, 11, 20))

        assert len(drafts) == 1
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        image_part = messages[0]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_key_rotation(self):
        failing = _client(error=_api_error())
        working = _client(content=json.dumps(VALID_POSTER))
        service = _service([failing, working])

        drafts = await service.extract(IMAGE_URL)

        assert len(drafts) == 1
        assert failing.chat.completions.create.await_count == 1
        assert working.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_all_keys_failing(self):
        clients = [_client(error=_api_error()), _client(error=_api_error())]
        service = _service(clients)

        assert await service.extract(IMAGE_URL) == []
        assert sum(c.chat.completions.create.await_count for c in clients) == 4

    @pytest.mark.asyncio
    async def test_image_download_failure(self):
        client = _client(content=json.dumps(VALID_POSTER))
        service = _service([client], image_status=404)

        assert await service.extract(IMAGE_URL) == []
        client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_choices_discarded(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        service = _service([client])

        assert await service.extract(IMAGE_URL) == []
        client.chat.completions.create.assert_awaited_once()
