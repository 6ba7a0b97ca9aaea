"""
QC 규칙 테이블

버전이 붙은 불변 설정 구조체입니다. 프로세스 시작 시 한 번 만들어져
(config.load_qc_rules) 각 검증기에 값으로 전달됩니다.
"""

from typing import Dict, Tuple
from pydantic import BaseModel, Field


RULES_VERSION = "2025.1"


class SafetyRules(BaseModel):
    """어린이 대상 안전 규칙 (금칙어/금지 테마 + 톤 키워드)"""
    model_config = {"frozen": True}

    forbidden_words: Tuple[str, ...] = (
        "죽음", "폭력", "무서운", "공포", "귀신", "좀비", "유혈", "전쟁",
        "death", "killing", "killed", "scary", "horror", "violence", "blood", "warfare",
        "weapon", "ghost", "zombie", "monster", "nightmare", "dark", "evil", "demon",
    )
    forbidden_themes: Tuple[str, ...] = (
        "horror", "violence", "death", "warfare", "politics", "adult content",
        "scary imagery", "gore", "weapons", "dark magic", "nightmares",
        "monsters", "ghosts", "zombies", "blood",
    )
    positive_words: Tuple[str, ...] = (
        "happy", "joy", "fun", "friend", "love", "bright", "warm", "smile",
        "adventure", "wonder", "magical", "kind", "hope", "gentle", "curious",
        "행복", "기쁨", "친구", "사랑", "웃음", "모험", "희망", "따뜻", "신비",
    )
    negative_words: Tuple[str, ...] = (
        "sad", "cry", "angry", "scary", "dark", "슬픈", "무서운",
    )
    min_tone_score: float = 0.7
    required_tone: str = "positive, uplifting, child-friendly, warm"
    target_audience: str = "children ages 5-12"


class TypographyRules(BaseModel):
    """자막 타이포그래피 규칙"""
    model_config = {"frozen": True}

    max_chars_per_line: Dict[str, int] = Field(default_factory=lambda: {"ko": 40, "en": 50})
    max_lines: int = 2
    min_font_size: int = 22
    min_safe_area_percent: float = 90.0
    required_zone: str = "bottom"
    min_contrast_ratio: float = 4.5

    def chars_limit(self, language: str) -> int:
        return self.max_chars_per_line.get(language, self.max_chars_per_line.get("ko", 40))


class ConsistencyRules(BaseModel):
    """스타일 일관성 규칙"""
    model_config = {"frozen": True}

    min_anchor_match: float = 0.75
    min_scene_consistency: float = 0.80
    max_color_drift: float = 0.20
    style_keywords: Tuple[str, ...] = (
        "animation", "3d", "2d", "cute", "colorful", "warm", "bright", "smooth",
        "gentle", "magical", "friendly", "soft", "vibrant", "pixar", "ghibli",
        "disney", "cartoon",
    )
    color_words: Tuple[str, ...] = (
        "red", "blue", "green", "yellow", "orange", "purple", "pink", "white", "black",
    )


class ScoringThresholds(BaseModel):
    """종합 점수 가중치와 재시도 정책"""
    model_config = {"frozen": True}

    weights: Dict[str, float] = Field(default_factory=lambda: {
        "typography": 0.25,
        "consistency": 0.35,
        "safety": 0.30,
        "technical": 0.10,
    })
    min_score: float = 0.7
    retry_on_scores: Dict[str, float] = Field(default_factory=lambda: {
        "typography": 0.8,
        "consistency": 0.75,
        "safety": 1.0,
    })
    max_attempts_per_scene: int = 3
    min_resolution: Tuple[int, int] = (1280, 720)
    min_duration_sec: float = 20.0
    max_duration_sec: float = 30.0
    required_fps: int = 24


class QCRules(BaseModel):
    """QC 게이트 전체 규칙 묶음"""
    model_config = {"frozen": True}

    version: str = RULES_VERSION
    safety: SafetyRules = Field(default_factory=SafetyRules)
    typography: TypographyRules = Field(default_factory=TypographyRules)
    consistency: ConsistencyRules = Field(default_factory=ConsistencyRules)
    scoring: ScoringThresholds = Field(default_factory=ScoringThresholds)
