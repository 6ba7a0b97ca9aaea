"""
Scene Planner: BookFacts + StyleBible → 3 ScenePlan → 3 SceneScript

씬 기획(plan_scenes)은 결정적이고, 스크립트 작성(generate_script)은
텍스트 생성 호출이라 실패할 수 있으므로 재시도 코디네이터의 script 단계로 다룹니다.
"""

from typing import List, Optional, Tuple

from agents.style_bible import apply_style_to_prompt
from schemas import (
    BookFacts,
    Language,
    ScenePlan,
    SceneRole,
    SceneScript,
    SceneType,
    StyleBible,
)
from utils.constants import SCENE_DURATION_SEC
from utils.errors import GenerationError, ScriptGenerationError
from utils.llm_utils import parse_llm_json, require_fields
from utils.logger import get_logger

logger = get_logger("scene_planner")

# (역할, 씬 타입, 목적, 기본 감정 톤, 시각적 초점)
SCENE_BLUEPRINT: Tuple[Tuple[SceneRole, SceneType, str, str, str], ...] = (
    (SceneRole.HOOK, SceneType.INTRO, "주인공과 상황을 소개하여 관심 유발", "호기심", "주인공과 배경"),
    (SceneRole.JOURNEY, SceneType.BODY, "핵심 줄거리를 스포일러 없이 전달", "기대감", "주인공의 여정"),
    (SceneRole.PROMISE, SceneType.OUTRO, "책의 메시지 전달 및 여운 있는 마무리", "감동", "메시지와 CTA"),
)

REQUIRED_SCRIPT_FIELDS = ("narration", "keyframePrompt", "videoPrompt")


def plan_scenes(book_facts: BookFacts) -> Tuple[ScenePlan, ...]:
    """역할 고정(hook/journey/promise)의 3개 씬 기획. 씬 n 은 플롯 비트 n 을 참조합니다."""
    plans = []
    for i, (role, scene_type, objective, default_tone, focus) in enumerate(SCENE_BLUEPRINT):
        scene_number = i + 1
        beat = book_facts.plot_beats[i]
        plans.append(ScenePlan(
            scene_number=scene_number,
            scene_role=role,
            scene_type=scene_type,
            objective=objective,
            emotional_tone=beat.emotional_tone or default_tone,
            visual_focus=focus,
            plot_beat_reference=beat.order,
            start_sec=(scene_number - 1) * SCENE_DURATION_SEC,
            end_sec=scene_number * SCENE_DURATION_SEC,
        ))
    logger.info(f"[Planner] Planned {len(plans)} scenes: " + " → ".join(p.scene_role.value for p in plans))
    return tuple(plans)


def build_script_prompt(
    book_facts: BookFacts,
    style_bible: StyleBible,
    plan: ScenePlan,
    language: Language = Language.KO,
    feedback: Optional[List[str]] = None,
) -> str:
    """씬 스크립트 작성 프롬프트"""
    beat = book_facts.plot_beats[plan.plot_beat_reference - 1]
    characters = "\n".join(
        f"- {c.name} ({c.role}): {c.appearance}" for c in book_facts.main_characters
    )
    if Language(language) == Language.EN:
        narration_rule = "English, warm storyteller voice, 1-2 short sentences, one sentence per line (\\n), max 50 characters per line"
    else:
        narration_rule = "한국어 해요체, 1-2문장, 문장마다 줄바꿈(\\n), 한 줄 40자 이내, 최대 2줄"

    feedback_block = ""
    if feedback:
        feedback_block = "\n## 이전 시도에서 발견된 문제 (반드시 고칠 것)\n" + "\n".join(f"- {f}" for f in feedback) + "\n"

    return f"""당신은 어린이 도서관 키오스크용 북트레일러 작가입니다.
8초 분량의 씬 {plan.scene_number}/3 스크립트를 작성하세요.

## 책 정보
- 제목: {book_facts.canonical_title}
- 저자: {book_facts.author}
- 줄거리: {book_facts.logline}
- 배경: {book_facts.setting}
- 주제: {', '.join(book_facts.themes)}

## 등장인물
{characters}

## 이 씬의 기획
- 역할: {plan.scene_role.value}
- 목적: {plan.objective}
- 참조 비트: {beat.abstract_event} ({beat.emotional_tone})
- 감정 톤: {plan.emotional_tone}
- 시각적 초점: {plan.visual_focus}

## 스타일
- 비주얼: {style_bible.visual_style}
- 무드: {style_bible.mood}
- 팔레트: {', '.join(style_bible.color_palette)}
- 카메라: {style_bible.camera_language}
- 캐릭터 일관성: {style_bible.character_guidance}

## 규칙
- 결말/반전 스포일러 금지
- 폭력, 공포, 어두운 표현 금지 (5-12세 어린이 대상)
- 밝고 따뜻한 톤 유지
{feedback_block}
## 출력 형식 (JSON)
{{
  "narration": "{narration_rule}",
  "characterDialogue": "선택: 캐릭터 대사 (없으면 빈 문자열)",
  "characterName": "선택: 대사하는 캐릭터 이름",
  "visualDescription": "장면 묘사 (영어)",
  "keyframePrompt": "키프레임 이미지 프롬프트 (영어, 주인공 외형과 팔레트 포함, (no text))",
  "videoPrompt": "카메라 움직임과 동작 중심의 영상 프롬프트 (영어, (no text))"
}}

JSON만 반환하세요:"""


def parse_script(raw: str, plan: ScenePlan, style_bible: StyleBible) -> SceneScript:
    """
    LLM 응답 → SceneScript. 키프레임/영상 프롬프트에는 스타일 바이블을 적용합니다.

    Raises:
        ScriptGenerationError: JSON 파싱 실패 또는 필수 필드 누락
    """
    try:
        data = require_fields(parse_llm_json(raw), REQUIRED_SCRIPT_FIELDS)
    except ValueError as e:
        raise ScriptGenerationError(f"Scene {plan.scene_number}: unusable script response ({e})") from e

    dialogue = (data.get("characterDialogue") or "").strip() or None
    speaker = (data.get("characterName") or "").strip() or None
    return SceneScript(
        scene_number=plan.scene_number,
        scene_type=plan.scene_type,
        scene_role=plan.scene_role,
        narration=data["narration"].strip(),
        character_dialogue=dialogue,
        character_name=speaker if dialogue else None,
        visual_description=(data.get("visualDescription") or "").strip(),
        keyframe_prompt=apply_style_to_prompt(data["keyframePrompt"], style_bible),
        video_prompt=apply_style_to_prompt(data["videoPrompt"], style_bible, include_protagonist=False),
        duration_sec=SCENE_DURATION_SEC,
    )


class ScenePlanner:
    """
    씬 스크립트 생성기.

    Args:
        provider: generate_text 를 가진 GenerationProvider
        language: 나레이션 로케일
    """

    def __init__(self, provider, language: Language = Language.KO):
        self.provider = provider
        self.language = Language(language)

    def plan(self, book_facts: BookFacts) -> Tuple[ScenePlan, ...]:
        return plan_scenes(book_facts)

    async def generate_script(
        self,
        book_facts: BookFacts,
        style_bible: StyleBible,
        plan: ScenePlan,
        feedback: Optional[List[str]] = None,
    ) -> SceneScript:
        prompt = build_script_prompt(book_facts, style_bible, plan, self.language, feedback)
        logger.info(f"[Planner] Writing script for scene {plan.scene_number} ({plan.scene_role.value})")
        try:
            raw = await self.provider.generate_text(prompt)
        except GenerationError as e:
            raise ScriptGenerationError(e.message, retryable=e.retryable) from e
        except Exception as e:
            raise ScriptGenerationError(f"Scene {plan.scene_number}: text generation failed ({e})") from e
        return parse_script(raw, plan, style_bible)
