"""
BookTrailer Agents Package

파이프라인 구성 요소:
- BookGrounder: 제목/저자 → BookFacts (카탈로그 → 오프라인 테이블 → 최소 사실)
- build_style_bible: BookFacts → StyleBible (순수 함수)
- ScenePlanner: 3개 씬 기획 + 스크립트 생성
- GenerationProvider: 텍스트/키프레임/영상 생성 인터페이스 (GeminiVeoProvider)
- hierarchical_retry: 씬별 script → keyframe → video 재시도 상태 머신
- QCRunner: Safety → Typography → Consistency → Scoring
- CostReporter: 재시도 기반 비용 집계
- ComposerAgent: 씬 영상 + 자막 → 최종 트레일러
"""

from .grounding_agent import BookCatalog, BookGrounder, GoogleBooksCatalog
from .style_bible import build_style_bible, apply_style_to_prompt
from .scene_planner import ScenePlanner
from .generation_provider import GenerationProvider, GeminiVeoProvider, create_provider
from .safety_gate import SafetyGate
from .typography_validator import TypographyValidator, auto_fix_typography
from .consistency_validator import ConsistencyValidator
from .video_scorer import VideoScorer
from .qc_runner import QCRunner
from .cost_reporter import CostReporter
from .composer_agent import ComposerAgent

__all__ = [
    "BookCatalog",
    "BookGrounder",
    "GoogleBooksCatalog",
    "build_style_bible",
    "apply_style_to_prompt",
    "ScenePlanner",
    "GenerationProvider",
    "GeminiVeoProvider",
    "create_provider",
    "SafetyGate",
    "TypographyValidator",
    "auto_fix_typography",
    "ConsistencyValidator",
    "VideoScorer",
    "QCRunner",
    "CostReporter",
    "ComposerAgent",
]
