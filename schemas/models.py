"""
BookTrailer Data Models

공통 데이터 모델 정의 (Pydantic 기반)
- BookFacts: 그라운딩된 도서 정보 (잡당 1회 생성, 이후 불변)
- StyleBible: 모든 씬이 공유하는 시각 스타일
- ScenePlan / SceneScript: 3개 씬의 기획과 스크립트
- SceneRetryState / HierarchicalRetryState: 단계별 재시도 상태 (불변 값 타입)
- QCReport: Safety / Typography / Consistency / Scoring 결과
- VideoGenerationResult: 잡의 최종 산출물
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Tuple
from pydantic import BaseModel, Field


def now_iso() -> str:
    return datetime.now().isoformat()


class Language(str, Enum):
    """자막/나레이션 로케일"""
    KO = "ko"
    EN = "en"


class SceneType(str, Enum):
    INTRO = "intro"
    BODY = "body"
    OUTRO = "outro"


class SceneRole(str, Enum):
    """씬의 서사적 역할"""
    HOOK = "hook"
    JOURNEY = "journey"
    PROMISE = "promise"


class Stage(str, Enum):
    """씬 생성 단계 (script → keyframe → video)"""
    SCRIPT = "script"
    KEYFRAME = "keyframe"
    VIDEO = "video"


class QCStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class JobStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class CallbackStatus(str, Enum):
    READY = "READY"
    FAILED = "FAILED"


class AssemblyMode(str, Enum):
    """최종 합성 결과 유형"""
    SUBTITLED = "subtitled"
    CONCAT_ONLY = "concat_only"
    FIRST_SCENE_ONLY = "first_scene_only"
    SKIPPED = "skipped"


# =============================================================================
# Book Grounding
# =============================================================================

class Character(BaseModel):
    """주요 등장인물"""
    model_config = {"frozen": True}

    name: str
    role: str = Field(default="protagonist", description="protagonist / supporting")
    appearance: str = Field(default="", description="외형 묘사 (영어, 프롬프트용)")
    personality: str = ""


class PlotBeat(BaseModel):
    """줄거리 비트 (스포일러 없는 추상 사건 + 감정 톤)"""
    model_config = {"frozen": True}

    order: int = Field(ge=1, le=3)
    abstract_event: str
    emotional_tone: str


class BookFacts(BaseModel):
    """
    그라운딩된 도서 정보

    잡당 1회 생성되며 이후 수정되지 않습니다.
    """
    model_config = {"frozen": True}

    canonical_title: str
    author: str
    logline: str
    main_characters: Tuple[Character, ...] = Field(min_length=1, max_length=3)
    plot_beats: Tuple[PlotBeat, ...] = Field(min_length=3, max_length=3)
    setting: str = ""
    themes: Tuple[str, ...] = ()
    target_audience: str = ""
    source_confidence: float = Field(default=0.5, ge=0.0, le=1.0, description="출처 신뢰도 (0~1)")
    source_id: str = ""

    @property
    def protagonist(self) -> Character:
        for character in self.main_characters:
            if character.role == "protagonist":
                return character
        return self.main_characters[0]


class BookCandidate(BaseModel):
    """카탈로그 검색 후보"""
    id: str
    title: str
    authors: List[str] = Field(default_factory=list)
    published_date: Optional[str] = None
    description: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    language: Optional[str] = None
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    thumbnail: Optional[str] = None


class RankedCandidate(BaseModel):
    candidate: BookCandidate
    score: float
    breakdown: Dict[str, float] = Field(default_factory=dict)


class GroundingResult(BaseModel):
    """그라운딩 결과: 사실 + 출처 (후보 / 오프라인 테이블 / 최소 생성)"""
    book_facts: BookFacts
    candidate: Optional[BookCandidate] = None
    source: str = Field(default="catalog", description="catalog / fallback / minimal")


# =============================================================================
# Style Bible
# =============================================================================

class TypographyPlan(BaseModel):
    """자막 타이포그래피 계획 (Typography QC 의 기준)"""
    model_config = {"frozen": True}

    subtitle_zone: str = "bottom"
    safe_area_percent: float = Field(default=90.0, ge=90.0)
    safe_margin_px: int = 80
    max_lines: int = 2
    max_chars_per_line: Dict[str, int] = Field(default_factory=lambda: {"ko": 40, "en": 50})
    font_size: int = 22
    min_contrast_ratio: float = Field(default=4.5, ge=4.5, description="WCAG AA")
    font_family: Dict[str, str] = Field(
        default_factory=lambda: {"ko": "Noto Sans KR", "en": "Roboto"}
    )
    text_color: str = "#FFFFFF"
    outline_color: str = "#000000"


class StyleBible(BaseModel):
    """
    모든 씬이 공유하는 단일 시각 스타일

    BookFacts 로부터 결정적으로 도출됩니다 (외부 호출 없음).
    """
    model_config = {"frozen": True}

    visual_style: str
    mood: str
    color_palette: Tuple[str, ...] = Field(min_length=1)
    camera_language: str
    lighting: str = ""
    character_guidance: str = ""
    protagonist_design: str = ""
    primary_location: str = ""
    typography: TypographyPlan = Field(default_factory=TypographyPlan)
    forbidden_elements: Tuple[str, ...] = ()
    style_hash: str = ""


# =============================================================================
# Scene Planning
# =============================================================================

class ScenePlan(BaseModel):
    model_config = {"frozen": True}

    scene_number: int = Field(ge=1, le=3)
    scene_role: SceneRole
    scene_type: SceneType
    objective: str
    emotional_tone: str
    visual_focus: str
    plot_beat_reference: int = Field(ge=1, le=3)
    start_sec: int = 0
    end_sec: int = 8


class SceneScript(BaseModel):
    """씬 스크립트 (나레이션 + 생성 프롬프트)"""
    model_config = {"frozen": True}

    scene_number: int = Field(ge=1, le=3)
    scene_type: SceneType
    scene_role: Optional[SceneRole] = None
    narration: str
    character_dialogue: Optional[str] = None
    character_name: Optional[str] = None
    visual_description: str = ""
    keyframe_prompt: str = ""
    video_prompt: str = ""
    duration_sec: int = 8

    @property
    def subtitle_text(self) -> str:
        return self.narration or self.visual_description


# =============================================================================
# Hierarchical Retry
# =============================================================================

class RetryLimits(BaseModel):
    """단계별 재시도 한도와 백오프 기준 지연 (초)"""
    model_config = {"frozen": True}

    script: int = 3
    keyframe: int = 3
    video: int = 2
    base_delay_sec: Dict[str, float] = Field(
        default_factory=lambda: {"script": 1.0, "keyframe": 2.0, "video": 3.0}
    )

    def for_stage(self, stage: Stage) -> int:
        return getattr(self, Stage(stage).value)


class SceneRetryState(BaseModel):
    """
    씬 하나의 재시도 상태.

    불변 값 타입입니다. 전이 함수(agents.hierarchical_retry)가 항상 새 인스턴스를 반환합니다.
    """
    model_config = {"frozen": True}

    scene_number: int = Field(ge=1, le=3)
    current_stage: Stage = Stage.SCRIPT
    script_retries: int = 0
    keyframe_retries: int = 0
    video_retries: int = 0
    last_error: Optional[str] = None
    script: Optional[SceneScript] = None
    keyframe_bytes: Optional[bytes] = Field(default=None, repr=False)
    keyframe_url: Optional[str] = None
    video_bytes: Optional[bytes] = Field(default=None, repr=False)
    video_url: Optional[str] = None
    terminally_failed: bool = False

    def retries_for(self, stage: Stage) -> int:
        return getattr(self, f"{Stage(stage).value}_retries")

    @property
    def total_retries(self) -> int:
        return self.script_retries + self.keyframe_retries + self.video_retries


class HierarchicalRetryState(BaseModel):
    """잡 하나의 재시도 상태 (오케스트레이터 전용)"""
    model_config = {"frozen": True}

    job_id: str
    scenes: Tuple[SceneRetryState, ...] = Field(min_length=3, max_length=3)
    limits: RetryLimits = Field(default_factory=RetryLimits)
    total_attempts: int = 0
    max_total_attempts: int = 24

    def scene(self, scene_number: int) -> SceneRetryState:
        return self.scenes[scene_number - 1]


class RetryDecision(BaseModel):
    """단계 실패 후 재시도 코디네이터의 결정"""
    success: bool = False
    scene_number: int
    stage: Stage
    should_continue: bool
    next_stage: Optional[Stage] = None
    is_fallback: bool = False
    error: Optional[str] = None


# =============================================================================
# QC
# =============================================================================

class SafetyQCResult(BaseModel):
    status: QCStatus
    score: float = Field(description="0.0 또는 1.0 (부분 점수 없음)")
    forbidden_words_found: List[str] = Field(default_factory=list)
    theme_violations: List[str] = Field(default_factory=list)
    tone_score: float = 0.0
    violations: List[str] = Field(default_factory=list)
    visual_safety_flags: List[str] = Field(default_factory=list)


class TypographyCheck(BaseModel):
    scene_number: int
    check: str
    passed: bool
    message: str = ""


class TypographyQCResult(BaseModel):
    status: QCStatus
    score: float = 0.0
    checks: Dict[str, bool] = Field(default_factory=lambda: {
        "subtitleLength": False,
        "subtitlePosition": False,
        "fontSizeCompliance": False,
        "contrastRatio": False,
    })
    violations: List[str] = Field(default_factory=list)
    details: List[TypographyCheck] = Field(default_factory=list)
    evaluated: bool = True


class ConsistencyQCResult(BaseModel):
    status: QCStatus
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    anchor_match: float = Field(default=0.0, ge=0.0, le=1.0)
    scene_consistency: float = Field(default=0.0, ge=0.0, le=1.0)
    color_drift: float = Field(default=1.0, ge=0.0, le=1.0)
    style_signature_match: bool = False
    violations: List[str] = Field(default_factory=list)
    evaluated: bool = True


class VideoScoreResult(BaseModel):
    status: QCStatus
    overall_score: float = 0.0
    component_scores: Dict[str, float] = Field(default_factory=dict)
    passed_threshold: bool = False


class QCReport(BaseModel):
    """잡 시도 1회의 QC 결과 (생성 후 불변)"""
    model_config = {"frozen": True}

    job_id: str
    overall: QCStatus
    overall_score: float
    safety: SafetyQCResult
    typography: TypographyQCResult
    consistency: ConsistencyQCResult
    scoring: VideoScoreResult
    timestamp: str = Field(default_factory=now_iso)


# =============================================================================
# Cost / Result / Job
# =============================================================================

class CostBreakdown(BaseModel):
    base_generation: float = 0.0
    script_generation: float = 0.0
    keyframe_generation: float = 0.0
    video_generation: float = 0.0
    retry_overhead: float = 0.0
    total: float = 0.0


class ApiCallCounts(BaseModel):
    text: int = 0
    image: int = 0
    video: int = 0


class CostReport(BaseModel):
    job_id: str
    breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    api_calls: ApiCallCounts = Field(default_factory=ApiCallCounts)
    retry_breakdown: Dict[int, int] = Field(default_factory=dict)
    elapsed_time_ms: int = 0
    cache_hit: bool = False
    timestamp: str = Field(default_factory=now_iso)


class JobRequest(BaseModel):
    """잡 입력"""
    title: str = Field(min_length=1)
    author: Optional[str] = None
    book_id: Optional[str] = None
    language: Language = Language.KO


class VideoGenerationResult(BaseModel):
    """잡의 최종 산출물. 한 번 작성된 뒤 캐시됩니다."""
    job_id: str
    status: JobStatus
    video_url: Optional[str] = None
    subtitle_url: Optional[str] = None
    qc_report: Optional[QCReport] = None
    cost_report: Optional[CostReport] = None
    cache_hit: bool = False
    error: Optional[str] = None
    successful_scenes: List[int] = Field(default_factory=list)
    assembly_mode: Optional[AssemblyMode] = None
    created_at: str = Field(default_factory=now_iso)
    completed_at: Optional[str] = None


class CacheEntry(BaseModel):
    cache_key: str
    result: VideoGenerationResult
    request_count: int = 1
    created_at: str = Field(default_factory=now_iso)


class AssemblyOutcome(BaseModel):
    mode: AssemblyMode
    output_path: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class CallbackPayload(BaseModel):
    """Worker → Backend 완료 콜백 본문 (camelCase 로 직렬화)"""
    model_config = {"populate_by_name": True}

    book_id: str = Field(alias="bookId")
    status: CallbackStatus
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    subtitle_url: Optional[str] = Field(default=None, alias="subtitleUrl")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")

    def to_wire(self) -> Dict[str, str]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
