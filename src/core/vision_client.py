"""Poster reading through a vision-language model.

Uses the OpenAI-compatible chat API (Gemini's OpenAI endpoint by default).
Several API keys may be configured; a failing call moves on to the next key
and is retried with backoff. Model output is validated with pydantic and a
malformed response is discarded as a whole.
"""

import base64
import json
import re
from datetime import date, datetime
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from src.config.settings import Settings
from src.core.event_model import EventDraft
from src.core.exceptions import InvalidConfigError, VisionExtractionError
from src.core.retry import RetryConfig, with_retry
from src.logging.logger import get_logger
from src.utils.gifts import parse_gift
from src.utils.locations import VALID_CITIES, normalize_city

logger = get_logger(__name__)


VISION_PROMPT = """請判斷這張圖片是否為「單一場次」的捐血活動海報。今天是 {today}。

city 只能是以下 22 個縣市之一：
{cities}
「新竹」「嘉義」不是有效縣市，請寫成「新竹市/新竹縣」「嘉義市/嘉義縣」。

以下情況視為無效：
- 活動總表、行事曆、場次表、巡迴表，或列出多個日期/地點的表格
- 沒有具體地點（「XX捐血中心」是發布單位，不是活動地點）
- 沒有明確的單一日期、日期為區間、或日期早於今天

民國年請加 1911 轉成西元年（114年 → 2025年）。

無效時回傳：{{"valid": false, "reason": "原因"}}
有效時回傳 JSON：
{{
  "valid": true,
  "title": "活動標題",
  "date": "YYYY-MM-DD",
  "time": "HH:MM-HH:MM",
  "location": "地點名稱（不含縣市）",
  "city": "縣市",
  "district": "行政區",
  "organizer": "主辦單位",
  "gift": "贈品說明，無則 null"
}}"""


def build_prompt(today: date) -> str:
    return VISION_PROMPT.format(today=today.isoformat(), cities="、".join(VALID_CITIES))


class VisionPoster(BaseModel):
    """One poster reading as returned by the model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    valid: bool
    reason: str | None = None
    title: str | None = None
    date: str | None = None
    time: str | None = None
    location: str | None = None
    city: str | None = None
    district: str | None = None
    organizer: str | None = None
    gift: str | None = None

    @field_validator("gift", mode="before")
    @classmethod
    def gift_as_text(cls, v: Any) -> Any:
        """Models sometimes return the gift as an object or a list."""
        if isinstance(v, dict):
            return v.get("name")
        if isinstance(v, list):
            return "、".join(str(item) for item in v if item)
        return v


_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_code_fence(content: str) -> str:
    """Remove a ```json ... ``` wrapper around a model response."""
    return _CODE_FENCE_RE.sub("", content.strip()).strip()


def parse_vision_response(content: str | None, image_url: str) -> list[EventDraft]:
    """Validate a model response and turn it into drafts.

    The whole response is discarded when it is not JSON or when any item
    fails validation. Items marked invalid, or lacking title/date/location,
    are skipped.

    Args:
        content: Raw model output
        image_url: Poster the response describes

    Returns:
        Drafts (empty when the poster is not a single donation drive)
    """
    text = strip_code_fence(content or "")
    if not text or text == "null":
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("vision_json_error", url=image_url[:120], error=str(e))
        return []

    items = data if isinstance(data, list) else [data]
    try:
        posters = [VisionPoster.model_validate(item) for item in items]
    except ValidationError as e:
        logger.warning("vision_response_invalid", url=image_url[:120], errors=e.error_count())
        return []

    drafts: list[EventDraft] = []
    for poster in posters:
        if not poster.valid:
            logger.info("vision_poster_rejected", url=image_url[:120], reason=poster.reason)
            continue
        if not (poster.title and poster.date and poster.location):
            logger.info("vision_missing_fields", url=image_url[:120])
            continue

        city = normalize_city(poster.city)
        if poster.city and city != poster.city:
            logger.debug("vision_city_repaired", original=poster.city, city=city)

        drafts.append(
            EventDraft(
                title=poster.title,
                raw_date=poster.date,
                time=poster.time,
                location=poster.location,
                city=city,
                district=poster.district,
                organizer=poster.organizer,
                gift=parse_gift(poster.gift),
                poster_url=image_url,
                source_url=image_url,
            )
        )

    return drafts


class VisionExtractionService:
    """Reads event fields off poster images.

    Usage:
        service = VisionExtractionService.from_settings(settings)
        drafts = await service.extract("https://.../poster.jpg")
    """

    def __init__(
        self,
        api_keys: list[str],
        model: str = "gemini-2.0-flash",
        base_url: str | None = None,
        timeout: float = 60.0,
        clients: list[Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
    ):
        if not api_keys and not clients:
            raise InvalidConfigError("No vision API key configured", field="vision_api_keys")

        self.model = model
        self._clients = clients or [
            AsyncOpenAI(api_key=key, base_url=base_url, timeout=timeout, max_retries=0)
            for key in api_keys
        ]
        self._key_index = 0
        self._http_client = http_client
        self.timeout = timeout
        # Two full rounds over the configured keys
        self.retry_config = retry_config or RetryConfig.for_vision(len(self._clients))

    @classmethod
    def from_settings(cls, settings: Settings) -> "VisionExtractionService | None":
        """Build the service, or None when disabled or without keys."""
        if not settings.vision_enabled or not settings.vision_keys:
            return None
        return cls(
            settings.vision_keys,
            model=settings.vision_model,
            base_url=settings.vision_base_url,
            timeout=settings.vision_timeout,
        )

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client for image downloads."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def _download_image(self, image_url: str) -> str:
        """Download an image and return it as a data: URL."""
        client = await self.get_client()
        response = await client.get(image_url)
        response.raise_for_status()
        mime = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        if not mime.startswith("image/"):
            mime = "image/jpeg"
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{mime};base64,{encoded}"

    def _rotate_key(self, error: Exception) -> None:
        previous = self._key_index
        self._key_index = (self._key_index + 1) % len(self._clients)
        logger.warning(
            "vision_key_rotated",
            error_type=type(error).__name__,
            from_key=previous,
            to_key=self._key_index,
        )

    async def _complete(self, prompt: str, image_data_url: str) -> str | None:
        """Run the chat completion, rotating keys between attempts.

        Raises:
            VisionExtractionError: When every attempt failed
        """
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_data_url}},
                ],
            }
        ]

        @with_retry(self.retry_config)
        async def attempt() -> str | None:
            client = self._clients[self._key_index]
            try:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.1,
                    response_format={"type": "json_object"},
                )
            except openai.APIError as e:
                self._rotate_key(e)
                raise
            if not response.choices:
                logger.warning("vision_empty_choices", model=self.model)
                return None
            return response.choices[0].message.content

        try:
            return await attempt()
        except openai.APIError as e:
            raise VisionExtractionError(str(e), model=self.model) from e

    async def extract(self, image_url: str, as_of: date | None = None) -> list[EventDraft]:
        """Read the events shown on a poster.

        Args:
            image_url: Poster image URL
            as_of: Reference date given to the model (defaults to today)

        Returns:
            Drafts read off the poster; empty on any failure
        """
        try:
            image_data_url = await self._download_image(image_url)
        except httpx.HTTPError as e:
            logger.warning("vision_image_download_failed", url=image_url[:120], error=str(e))
            return []

        prompt = build_prompt(as_of or datetime.now().date())
        try:
            content = await self._complete(prompt, image_data_url)
        except VisionExtractionError as e:
            logger.error("vision_unavailable", url=image_url[:120], error=str(e))
            return []

        drafts = parse_vision_response(content, image_url)
        logger.info("vision_extracted", url=image_url[:120], events=len(drafts))
        return drafts
