"""
Cache Store: (제목, 저자) → 완료된 VideoGenerationResult

- 키: 정규화된 "title::author" 의 sha256
- 히트 시 결과를 그대로 반환하고 cache_hit=True 로 표시
- get_or_build: 같은 키의 동시 빌드는 하나만 실행하고 나머지는 같은 Future 를 기다림
- 실패한 빌드는 캐시하지 않음
"""

import asyncio
import hashlib
import re
from typing import Awaitable, Callable, Dict, Optional

from schemas import CacheEntry, JobStatus, VideoGenerationResult
from utils.logger import get_logger

logger = get_logger("cache")

_STRIP_RE = re.compile(r"[^\w\sㄱ-ㅎㅏ-ㅣ가-힣]")


def normalize_text(text: Optional[str]) -> str:
    """앞뒤 공백 제거, 소문자화, 특수문자 제거, 연속 공백 정리"""
    if not text:
        return ""
    text = _STRIP_RE.sub("", text.strip().lower())
    return re.sub(r"\s+", " ", text).strip()


def make_cache_key(title: str, author: Optional[str] = None) -> str:
    normalized_title = normalize_text(title)
    normalized_author = normalize_text(author)
    raw = f"{normalized_title}::{normalized_author}" if normalized_author else normalized_title
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class CacheStore:
    """
    인메모리 결과 캐시 (만료 없음, 축출은 외부 스토리지 관심사)

    단일 이벤트 루프 안에서 여러 잡이 공유합니다.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def has(self, title: str, author: Optional[str] = None) -> bool:
        return make_cache_key(title, author) in self._entries

    def get(self, title: str, author: Optional[str] = None) -> Optional[VideoGenerationResult]:
        key = make_cache_key(title, author)
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries[key] = entry.model_copy(update={"request_count": entry.request_count + 1})
        logger.info(f"[Cache] HIT {key[:12]}... (requests: {entry.request_count + 1})")
        return entry.result.model_copy(update={"cache_hit": True})

    def set(self, title: str, author: Optional[str], result: VideoGenerationResult) -> str:
        key = make_cache_key(title, author)
        self._entries[key] = CacheEntry(cache_key=key, result=result)
        logger.info(f"[Cache] SET {key[:12]}... (job {result.job_id})")
        return key

    def delete(self, title: str, author: Optional[str] = None) -> bool:
        return self._entries.pop(make_cache_key(title, author), None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "entries": len(self._entries),
            "total_requests": sum(e.request_count for e in self._entries.values()),
            "in_flight": len(self._inflight),
        }

    async def get_or_build(
        self,
        title: str,
        author: Optional[str],
        builder: Callable[[], Awaitable[VideoGenerationResult]],
    ) -> VideoGenerationResult:
        """
        캐시 조회 후 없으면 builder 실행. 같은 키의 동시 요청은 한 번만 빌드합니다.

        Returns:
            캐시 히트 또는 대기한 요청이면 cache_hit=True 인 결과
        """
        cached = self.get(title, author)
        if cached is not None:
            return cached

        key = make_cache_key(title, author)
        pending = self._inflight.get(key)
        if pending is not None:
            logger.info(f"[Cache] Waiting for in-flight build {key[:12]}...")
            result = await asyncio.shield(pending)
            if result.status != JobStatus.COMPLETED:
                return result
            return result.model_copy(update={"cache_hit": True})

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await builder()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # 대기자가 없을 때 미회수 예외 경고 방지
            future.exception()
            raise
        finally:
            self._inflight.pop(key, None)

        if result.status == JobStatus.COMPLETED:
            self.set(title, author, result)
        else:
            logger.info(f"[Cache] Not caching {result.status.value} result for job {result.job_id}")
        future.set_result(result)
        return result
