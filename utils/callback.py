"""
Backend Completion Callback

잡이 끝나면 백엔드에 READY / FAILED 를 한 번 알립니다.
POST {BACKEND_URL}/api/internal/video-callback  (X-Internal-Secret 헤더)
"""

import asyncio
from typing import Optional

import aiohttp

from config import load_pipeline_config
from schemas import CallbackPayload
from utils.logger import get_logger

logger = get_logger("callback")

CALLBACK_PATH = "/api/internal/video-callback"
MAX_BACKOFF_SEC = 10.0


def callback_backoff(attempt: int, base_delay: float = 1.0) -> float:
    """attempt 는 1부터. min(base × 2^(attempt-1), 10)"""
    return min(base_delay * (2 ** (attempt - 1)), MAX_BACKOFF_SEC)


class BackendCallbackClient:
    def __init__(
        self,
        backend_url: Optional[str] = None,
        internal_secret: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout_sec: float = 10.0,
        base_delay: float = 1.0,
    ):
        backend = load_pipeline_config()["backend"]
        self.backend_url = (backend_url or backend["url"]).rstrip("/")
        self.internal_secret = internal_secret if internal_secret is not None else backend["internal_secret"]
        self.max_retries = max_retries or backend["max_retries"]
        self.timeout_sec = timeout_sec
        self.base_delay = base_delay

    @property
    def url(self) -> str:
        return f"{self.backend_url}{CALLBACK_PATH}"

    async def _post(self, session: aiohttp.ClientSession, body: dict) -> int:
        headers = {
            "Content-Type": "application/json",
            "X-Internal-Secret": self.internal_secret,
        }
        async with session.post(self.url, json=body, headers=headers) as resp:
            if resp.status >= 400:
                text = await resp.text()
                logger.warning(f"[Callback] HTTP {resp.status}: {text[:200]}")
            return resp.status

    async def notify(self, payload: CallbackPayload) -> bool:
        """
        완료 콜백 전송.

        Returns:
            성공 여부 (예외를 던지지 않음)
        """
        if not self.internal_secret:
            logger.warning(f"[Callback] INTERNAL_API_SECRET not set, skipping callback for {payload.book_id}")
            return False

        body = payload.to_wire()
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for attempt in range(1, self.max_retries + 1):
                try:
                    status = await self._post(session, body)
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.warning(f"[Callback] Attempt {attempt}/{self.max_retries} failed: {e}")
                else:
                    if status < 400:
                        logger.info(f"[Callback] {payload.book_id} → {payload.status.value} (attempt {attempt})")
                        return True
                    if 400 <= status < 500 and status != 429:
                        logger.error(f"[Callback] Non-retryable HTTP {status} for {payload.book_id}")
                        return False

                if attempt < self.max_retries:
                    await asyncio.sleep(callback_backoff(attempt, self.base_delay))

        logger.error(f"[Callback] Giving up on {payload.book_id} after {self.max_retries} attempts")
        return False
