"""
WebVTT 자막 생성

씬 하나당 큐 하나, 씬 n 은 [(n-1)×8, n×8) 초 구간을 차지합니다.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from schemas import Language, SceneScript, TypographyRules
from utils.constants import SCENE_DURATION_SEC

NARRATOR_NAME = "나레이터"


@dataclass
class SubtitleLine:
    start: float
    end: float
    text: str
    speaker: str = NARRATOR_NAME


def format_vtt_timestamp(seconds: float) -> str:
    seconds = max(seconds, 0.0)
    ms = int(round(seconds * 1000))
    hh = ms // 3600000
    ms -= hh * 3600000
    mm = ms // 60000
    ms -= mm * 60000
    ss = ms // 1000
    ms -= ss * 1000
    return f"{hh:02d}:{mm:02d}:{ss:02d}.{ms:03d}"


def wrap_text(text: str, max_chars: int) -> List[str]:
    """단어 단위 그리디 줄바꿈. 기존 줄바꿈은 유지하고, 한도보다 긴 단어는 한 줄로 둡니다."""
    wrapped: List[str] = []
    for paragraph in text.replace("\r\n", "\n").split("\n"):
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if len(candidate) <= max_chars or not current:
                current = candidate
            else:
                wrapped.append(current)
                current = word
        if current:
            wrapped.append(current)
    return wrapped


def cue_text(script: SceneScript) -> str:
    parts = [script.subtitle_text.strip()]
    if script.character_dialogue:
        parts.append(script.character_dialogue.strip())
    return " ".join(p for p in parts if p)


def build_timeline(scripts: Sequence[SceneScript], max_chars: int) -> List[SubtitleLine]:
    """씬 번호 순으로 8초 고정 큐 생성. 빠진 씬이 있으면 합성 영상처럼 앞으로 당겨 배치합니다."""
    timeline = []
    for i, script in enumerate(sorted(scripts, key=lambda s: s.scene_number)):
        start = i * SCENE_DURATION_SEC
        speaker = script.character_name if script.character_dialogue and script.character_name else NARRATOR_NAME
        timeline.append(SubtitleLine(
            start=start,
            end=start + SCENE_DURATION_SEC,
            text="\n".join(wrap_text(cue_text(script), max_chars)),
            speaker=speaker,
        ))
    return timeline


def render_vtt(timeline: Sequence[SubtitleLine]) -> str:
    buf = ["WEBVTT", ""]
    for i, line in enumerate(timeline, start=1):
        buf.append(str(i))
        buf.append(f"{format_vtt_timestamp(line.start)} --> {format_vtt_timestamp(line.end)}")
        buf.append(f"<v {line.speaker}>{line.text}")
        buf.append("")
    return "\n".join(buf)


def generate_vtt(
    scripts: Sequence[SceneScript],
    language: Language = Language.KO,
    rules: Optional[TypographyRules] = None,
) -> str:
    """
    씬 스크립트 → WebVTT 문자열.

    Args:
        scripts: 자막에 포함할 씬 (성공한 씬만 넘기면 해당 구간만 생성)
        language: 줄바꿈 한도를 고를 로케일
        rules: 타이포그래피 규칙 (줄당 글자 수)
    """
    rules = rules or TypographyRules()
    max_chars = rules.chars_limit(Language(language).value)
    return render_vtt(build_timeline(scripts, max_chars))


def write_vtt(content: str, out_path: str) -> None:
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(content)
