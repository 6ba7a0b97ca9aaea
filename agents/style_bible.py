"""
Style Bible Builder: BookFacts → StyleBible (순수 함수).

외부 호출 없이 그라운딩된 사실과 정적 규칙 테이블만으로 스타일을 도출합니다.
같은 BookFacts 를 넣으면 항상 같은 StyleBible 이 나옵니다.

- 스튜디오/브랜드명 제거 (IP-free)
- 모든 씬 프롬프트에 같은 스타일 접두어 + 팔레트 + 카메라 언어 적용
- 타이포그래피 계획: safe area ≥ 90%, 대비 ≥ 4.5:1
"""

import hashlib
import json
import re
from typing import Dict, List, Tuple

from schemas import BookFacts, StyleBible, TypographyPlan
from utils.constants import NO_TEXT_SUFFIX
from utils.logger import get_logger

logger = get_logger("style_bible")

FORBIDDEN_BRANDS: Tuple[str, ...] = (
    "Studio Ghibli",
    "Pixar",
    "Disney",
    "DreamWorks",
    "Ghibli",
    "Marvel",
    "DC",
    "Illumination",
    "Blue Sky",
    "Laika",
    "Sony Animation",
    "Aardman",
    "Nickelodeon",
    "Cartoon Network",
)

DEFAULT_ART_STYLE = (
    "3D animation with soft lighting, warm colors, rounded character designs, "
    "expressive eyes, child-friendly aesthetic"
)
DEFAULT_CAMERA_LANGUAGE = "eye-level perspective, slow dolly movements, shallow depth of field"
DEFAULT_PROTAGONIST_DESIGN = (
    "Young character with friendly expression, colorful clothing, distinctive accessory"
)

# 무드 규칙: (트리거 키워드, 무드, 팔레트, 조명). 위에서부터 첫 매칭 사용.
MOOD_RULES: List[Tuple[Tuple[str, ...], str, Tuple[str, ...], str]] = [
    (
        ("우주", "별", "space", "star", "planet", "꿈", "dream"),
        "dreamy, gentle and magical",
        ("sky-blue", "golden-yellow", "soft-pink", "warm-white", "desert-orange"),
        "soft starlight glow with warm golden rim light",
    ),
    (
        ("모험", "여행", "adventure", "journey", "quest"),
        "bright, colorful and adventurous",
        ("sky-blue", "sunny-yellow", "leaf-green", "warm-white", "coral-orange"),
        "bright natural daylight with crisp soft shadows",
    ),
    (
        ("우정", "사랑", "가족", "friendship", "love", "family"),
        "warm, gentle and heartfelt",
        ("soft-pink", "golden-yellow", "sky-blue", "warm-white", "forest-green"),
        "warm late-afternoon sunlight with soft shadows",
    ),
]
DEFAULT_MOOD = "warm, gentle and hopeful"
DEFAULT_PALETTE = ("sky-blue", "golden-yellow", "soft-pink", "warm-white", "forest-green")
DEFAULT_LIGHTING = "warm natural daylight with soft shadows"


def strip_brands(text: str) -> str:
    """브랜드/스튜디오명 제거 후 공백 정리."""
    for brand in FORBIDDEN_BRANDS:
        text = re.sub(rf"\b{re.escape(brand)}\b", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\s+([,.])", r"\1", text)
    return re.sub(r"\s+", " ", text).strip()


def _select_mood(book_facts: BookFacts) -> Tuple[str, Tuple[str, ...], str]:
    haystack = " ".join(
        [book_facts.setting, " ".join(book_facts.themes), book_facts.logline]
    ).lower()
    for triggers, mood, palette, lighting in MOOD_RULES:
        if any(t in haystack for t in triggers):
            return mood, palette, lighting
    return DEFAULT_MOOD, DEFAULT_PALETTE, DEFAULT_LIGHTING


def compute_style_hash(style_bible: StyleBible) -> str:
    """스타일 필드(해시 제외)의 정렬 JSON sha256."""
    fields = style_bible.model_dump(mode="json", exclude={"style_hash"})
    payload = json.dumps(fields, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def build_style_bible(book_facts: BookFacts) -> StyleBible:
    """
    BookFacts 로부터 StyleBible 도출.

    Args:
        book_facts: 그라운딩된 도서 정보

    Returns:
        팔레트 1개, 카메라 언어 1개, 타이포그래피 계획을 가진 StyleBible
    """
    mood, palette, lighting = _select_mood(book_facts)
    protagonist = book_facts.protagonist

    protagonist_design = strip_brands(protagonist.appearance or DEFAULT_PROTAGONIST_DESIGN)
    guidance = (
        f"Keep {protagonist.name} identical in every scene: {protagonist_design}. "
        "Same outfit, same proportions, same colors; no redesigns between scenes."
    )
    location = strip_brands(
        f"{book_facts.setting}, a welcoming environment with natural elements"
        if book_facts.setting else
        "A welcoming environment with warm lighting and natural elements"
    )

    bible = StyleBible(
        visual_style=DEFAULT_ART_STYLE,
        mood=mood,
        color_palette=palette,
        camera_language=DEFAULT_CAMERA_LANGUAGE,
        lighting=lighting,
        character_guidance=guidance,
        protagonist_design=protagonist_design,
        primary_location=location,
        typography=TypographyPlan(),
        forbidden_elements=FORBIDDEN_BRANDS,
    )
    bible = bible.model_copy(update={"style_hash": compute_style_hash(bible)})

    logger.info(
        f"[Style] '{book_facts.canonical_title}': mood='{mood}', "
        f"palette={', '.join(palette[:3])}..., hash={bible.style_hash[:8]}"
    )
    return bible


def build_style_prefix(style_bible: StyleBible) -> str:
    """모든 프롬프트 앞에 붙는 스타일 접두어."""
    return (
        f"{style_bible.visual_style}. "
        f"Mood: {style_bible.mood}. "
        f"Camera: {style_bible.camera_language}. "
        f"Color palette: {', '.join(style_bible.color_palette)}. "
        f"{style_bible.lighting}."
    )


def apply_style_to_prompt(base_prompt: str, style_bible: StyleBible, include_protagonist: bool = True) -> str:
    """
    씬 프롬프트에 스타일 바이블 적용.

    Args:
        base_prompt: 원본 씬 프롬프트
        style_bible: 적용할 스타일
        include_protagonist: 주인공 외형 묘사 포함 여부

    Returns:
        스타일 접두어 + (주인공) + 원본 + 화면 텍스트 금지 접미사
    """
    parts = [build_style_prefix(style_bible)]
    if include_protagonist and style_bible.protagonist_design:
        parts.append(f"Main character: {style_bible.protagonist_design}.")
    parts.append(base_prompt.strip())
    if NO_TEXT_SUFFIX not in base_prompt:
        parts.append(NO_TEXT_SUFFIX)
    return strip_brands(" ".join(parts))


def style_keywords(style_bible: StyleBible) -> Dict[str, List[str]]:
    """Consistency QC 의 앵커 키워드."""
    return {
        "visual_style": [style_bible.visual_style],
        "mood": [style_bible.mood],
        "camera_language": [style_bible.camera_language],
        "palette": list(style_bible.color_palette),
    }
