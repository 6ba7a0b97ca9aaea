"""
BookTrailer 예외 계층

외부 호출(카탈로그, 생성 API, 스토리지, 콜백)과 파이프라인 단계별 실패를
타입으로 구분합니다. 파이프라인은 실패를 씬의 현재 단계에 기록하고,
GenerationError.retryable 이 False 면 같은 단계 재시도 없이 폴백합니다.
"""

from typing import Optional


class BookTrailerError(Exception):
    """모든 BookTrailer 예외의 루트"""


class GenerationError(BookTrailerError):
    """
    생성 단계(script / keyframe / video) 실패.

    Args:
        stage: 실패한 단계 이름
        message: 사람이 읽을 수 있는 실패 사유
        retryable: False 면 같은 입력으로 재시도해도 의미 없음 (정책 위반 등).
            재시도 코디네이터가 해당 단계 예산을 소진하고 이전 단계로 폴백합니다.
    """

    stage = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        if stage:
            self.stage = stage
        self.message = message
        self.retryable = retryable

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class ScriptGenerationError(GenerationError):
    stage = "script"


class KeyframeGenerationError(GenerationError):
    stage = "keyframe"


class VideoGenerationError(GenerationError):
    stage = "video"


class CatalogError(BookTrailerError):
    """도서 카탈로그 검색 실패 (네트워크/HTTP/파싱)"""


class AssemblyError(BookTrailerError):
    """FFmpeg 합성 실패"""


class StorageError(BookTrailerError):
    """스토리지 저장/조회 실패"""


class CallbackError(BookTrailerError):
    """백엔드 완료 콜백 실패"""


class QCConfigError(BookTrailerError):
    """QC 규칙 테이블 로드/검증 실패"""
