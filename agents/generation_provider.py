"""
Generation Provider: 텍스트 / 키프레임 / 영상 생성 어댑터.

오케스트레이터는 GenerationProvider 인터페이스만 알고, 구체 어댑터는
시작 시 create_provider() 로 한 번 만들어 주입합니다.

계약: 실패 시 단계에 맞는 GenerationError 를 던지며, 빈 바이트를 성공으로 반환하지 않습니다.
"""

import asyncio
import os
import time
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp
from google import genai
from google.genai import types

from config import load_pipeline_config
from utils.constants import (
    KEYFRAME_TIMEOUT_SEC,
    MODEL_GEMINI_FLASH,
    MODEL_GEMINI_FLASH_IMAGE,
    MODEL_VEO,
    SCENE_DURATION_SEC,
    TEXT_TIMEOUT_SEC,
    VIDEO_POLL_INTERVAL_SEC,
    VIDEO_TIMEOUT_SEC,
)
from utils.errors import (
    GenerationError,
    KeyframeGenerationError,
    ScriptGenerationError,
    VideoGenerationError,
)
from utils.logger import get_logger

logger = get_logger("generation_provider")


class GenerationProvider(ABC):
    """생성 서비스 추상 인터페이스"""

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def generate_text(self, prompt: str) -> str:
        """프롬프트 → 텍스트 (JSON 응답 기대)"""
        ...

    @abstractmethod
    async def generate_keyframe(self, prompt: str) -> bytes:
        """프롬프트 → 키프레임 이미지 바이트"""
        ...

    @abstractmethod
    async def generate_video(self, keyframe: bytes, prompt: str, duration_seconds: int = SCENE_DURATION_SEC) -> bytes:
        """키프레임 + 프롬프트 → 영상 바이트"""
        ...


class GeminiVeoProvider(GenerationProvider):
    """
    Gemini (텍스트/이미지) + Veo (image-to-video) 어댑터.

    google-genai 비동기 클라이언트(client.aio)를 사용합니다.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        text_model: str = MODEL_GEMINI_FLASH,
        image_model: str = MODEL_GEMINI_FLASH_IMAGE,
        video_model: str = MODEL_VEO,
        aspect_ratio: str = "16:9",
    ):
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY")
        if not self.api_key:
            raise ValueError("GOOGLE_API_KEY is required for the gemini provider.")

        self.client = genai.Client(api_key=self.api_key)
        self.text_model = text_model
        self.image_model = image_model
        self.video_model = video_model
        self.aspect_ratio = aspect_ratio

    def name(self) -> str:
        return "gemini"

    async def generate_text(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.text_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        response_mime_type="application/json",
                        temperature=0.7,
                    ),
                ),
                timeout=TEXT_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError as e:
            raise ScriptGenerationError(f"Text generation timed out after {TEXT_TIMEOUT_SEC}s") from e
        except Exception as e:
            raise ScriptGenerationError(f"Text generation failed: {e}") from e

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise ScriptGenerationError("Empty response from text model")
        return text

    async def generate_keyframe(self, prompt: str) -> bytes:
        logger.info(f"[Keyframe] Requesting image ({len(prompt)} chars prompt)")
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.image_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
                ),
                timeout=KEYFRAME_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError as e:
            raise KeyframeGenerationError(f"Keyframe generation timed out after {KEYFRAME_TIMEOUT_SEC}s") from e
        except Exception as e:
            raise KeyframeGenerationError(f"Keyframe generation failed: {e}") from e

        for candidate in response.candidates or []:
            content = getattr(candidate, "content", None)
            for part in (content.parts if content and content.parts else []):
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    return inline.data

        raise KeyframeGenerationError(
            "No image data in response (possibly blocked by safety filter)", retryable=False
        )

    async def generate_video(self, keyframe: bytes, prompt: str, duration_seconds: int = SCENE_DURATION_SEC) -> bytes:
        if not keyframe:
            raise VideoGenerationError("Keyframe bytes are required for image-to-video", retryable=False)

        logger.info(f"[Video] Submitting {duration_seconds}s Veo job")
        try:
            operation = await self.client.aio.models.generate_videos(
                model=self.video_model,
                prompt=prompt,
                image=types.Image(image_bytes=keyframe, mime_type="image/png"),
                config=types.GenerateVideosConfig(
                    aspect_ratio=self.aspect_ratio,
                    duration_seconds=duration_seconds,
                    number_of_videos=1,
                ),
            )
        except Exception as e:
            raise VideoGenerationError(f"Video submission failed: {e}") from e

        start = time.time()
        while not operation.done:
            if time.time() - start > VIDEO_TIMEOUT_SEC:
                raise VideoGenerationError(f"Video generation timed out after {VIDEO_TIMEOUT_SEC}s")
            await asyncio.sleep(VIDEO_POLL_INTERVAL_SEC)
            try:
                operation = await self.client.aio.operations.get(operation)
            except Exception as e:
                raise VideoGenerationError(f"Polling video operation failed: {e}") from e

        if getattr(operation, "error", None):
            raise VideoGenerationError(f"Veo operation error: {operation.error}")

        response = operation.response
        videos = getattr(response, "generated_videos", None) if response else None
        if not videos:
            raise VideoGenerationError("Veo returned no videos (possibly filtered)", retryable=False)

        video = videos[0].video
        if getattr(video, "video_bytes", None):
            return video.video_bytes
        if getattr(video, "uri", None):
            return await self._download(video.uri)
        raise VideoGenerationError("Veo video has neither bytes nor uri")

    async def _download(self, uri: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=120)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(uri, headers={"x-goog-api-key": self.api_key}) as response:
                    if response.status != 200:
                        raise VideoGenerationError(f"Video download failed: HTTP {response.status}")
                    data = await response.read()
        except aiohttp.ClientError as e:
            raise VideoGenerationError(f"Video download failed: {e}") from e

        if not data:
            raise VideoGenerationError("Downloaded video is empty")
        return data


def create_provider(name: Optional[str] = None, **kwargs) -> GenerationProvider:
    """
    프로바이더 팩토리. 프로세스 시작 시 한 번 호출해 오케스트레이터에 주입합니다.

    Args:
        name: 프로바이더 이름 (기본: GENERATION_PROVIDER 환경변수, 없으면 gemini)
    """
    name = (name or load_pipeline_config()["provider"]["name"]).lower()
    if name in ("gemini", "veo", "google"):
        return GeminiVeoProvider(**kwargs)
    raise GenerationError(f"Unknown generation provider: {name}", stage="setup", retryable=False)
