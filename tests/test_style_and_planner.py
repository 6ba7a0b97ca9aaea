"""
Style bible derivation and scene planning tests.
"""
import asyncio
import json
import sys
import os

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents.grounding_agent import find_fallback
from agents.scene_planner import ScenePlanner, build_script_prompt, parse_script, plan_scenes
from agents.style_bible import (
    apply_style_to_prompt,
    build_style_bible,
    compute_style_hash,
    strip_brands,
)
from schemas import Character, Language, SceneRole, SceneType
from utils.constants import NO_TEXT_SUFFIX
from utils.errors import ScriptGenerationError
from conftest import FakeProvider


# ==========================================================================
# Style Bible
# ==========================================================================

class TestStyleBible:

    def test_deterministic(self, book_facts):
        first = build_style_bible(book_facts)
        second = build_style_bible(book_facts)
        assert first == second
        assert first.style_hash == compute_style_hash(first)
        assert len(first.style_hash) == 64

    def test_hash_changes_with_facts(self, book_facts):
        other = book_facts.model_copy(update={"setting": "반짝이는 별이 가득한 우주", "themes": ("꿈",)})
        assert build_style_bible(other).style_hash != build_style_bible(book_facts).style_hash

    def test_mood_selection(self, book_facts):
        assert build_style_bible(book_facts).mood == "warm, gentle and heartfelt"

        little_prince = find_fallback("어린왕자").book_facts
        bible = build_style_bible(little_prince)
        assert bible.mood == "dreamy, gentle and magical"
        assert "desert-orange" in bible.color_palette

    def test_typography_plan_is_kiosk_safe(self, book_facts):
        plan = build_style_bible(book_facts).typography
        assert plan.safe_area_percent >= 90
        assert plan.min_contrast_ratio >= 4.5
        assert plan.max_chars_per_line == {"ko": 40, "en": 50}

    def test_brands_are_stripped(self, book_facts):
        branded = book_facts.model_copy(update={
            "main_characters": (
                Character(name="여우", role="protagonist", appearance="Pixar style fox, Studio Ghibli eyes"),
            ),
        })
        bible = build_style_bible(branded)
        assert "pixar" not in bible.protagonist_design.lower()
        assert "ghibli" not in bible.character_guidance.lower()
        assert strip_brands("A Disney , DreamWorks castle") == "A, castle"

    def test_apply_style_to_prompt(self, book_facts):
        bible = build_style_bible(book_facts)
        prompt = apply_style_to_prompt("the fox waves", bible)
        assert prompt.startswith(bible.visual_style)
        assert bible.protagonist_design in prompt
        assert prompt.endswith(NO_TEXT_SUFFIX)

        video = apply_style_to_prompt(f"slow pan {NO_TEXT_SUFFIX}", bible, include_protagonist=False)
        assert bible.protagonist_design not in video
        assert video.count(NO_TEXT_SUFFIX) == 1


# ==========================================================================
# Scene Planner
# ==========================================================================

class TestScenePlanner:

    def test_plan_roles_and_windows(self, book_facts):
        plans = plan_scenes(book_facts)
        assert [p.scene_role for p in plans] == [SceneRole.HOOK, SceneRole.JOURNEY, SceneRole.PROMISE]
        assert [p.scene_type for p in plans] == [SceneType.INTRO, SceneType.BODY, SceneType.OUTRO]
        assert [(p.start_sec, p.end_sec) for p in plans] == [(0, 8), (8, 16), (16, 24)]
        assert [p.plot_beat_reference for p in plans] == [1, 2, 3]
        assert plans[1].emotional_tone == "설렘"

    def test_prompt_locale_and_feedback(self, book_facts):
        bible = build_style_bible(book_facts)
        plan = plan_scenes(book_facts)[0]
        ko = build_script_prompt(book_facts, bible, plan, Language.KO)
        en = build_script_prompt(book_facts, bible, plan, Language.EN, feedback=["Scene 1: too long"])
        assert "씬 1/3" in ko
        assert "40자" in ko
        assert "max 50 characters per line" in en
        assert "- Scene 1: too long" in en
        assert "Scene 1: too long" not in ko

    def test_parse_script_applies_style(self, book_facts):
        bible = build_style_bible(book_facts)
        plan = plan_scenes(book_facts)[2]
        raw = "```json\n" + json.dumps({
            "narration": "  함께 읽어요!  ",
            "characterDialogue": "",
            "characterName": "여우",
            "visualDescription": "The fox smiles",
            "keyframePrompt": "fox under the tree",
            "videoPrompt": "camera rises",
        }) + "\n```"
        script = parse_script(raw, plan, bible)
        assert script.scene_number == 3
        assert script.scene_role == SceneRole.PROMISE
        assert script.narration == "함께 읽어요!"
        assert script.character_dialogue is None
        assert script.character_name is None
        assert script.keyframe_prompt.startswith(bible.visual_style)
        assert script.duration_sec == 8

    @pytest.mark.parametrize("raw", [
        "I cannot help with that.",
        json.dumps({"narration": "안녕", "keyframePrompt": "x"}),
        json.dumps({"narration": "  ", "keyframePrompt": "x", "videoPrompt": "y"}),
        json.dumps(["not", "an", "object"]),
    ])
    def test_parse_script_rejects_unusable_responses(self, book_facts, raw):
        bible = build_style_bible(book_facts)
        with pytest.raises(ScriptGenerationError):
            parse_script(raw, plan_scenes(book_facts)[0], bible)

    def test_generate_script_with_provider(self, book_facts):
        provider = FakeProvider()
        planner = ScenePlanner(provider, Language.KO)
        bible = build_style_bible(book_facts)
        plan = planner.plan(book_facts)[1]

        script = asyncio.run(planner.generate_script(book_facts, bible, plan, feedback=["shorter"]))
        assert script.scene_number == 2
        assert provider.calls["text"] == 1
        assert "- shorter" in provider.text_prompts[0]

    def test_provider_failure_becomes_script_error(self, book_facts):
        provider = FakeProvider(fail_plan={("script", 1): 1})
        planner = ScenePlanner(provider)
        bible = build_style_bible(book_facts)
        with pytest.raises(ScriptGenerationError):
            asyncio.run(planner.generate_script(book_facts, bible, planner.plan(book_facts)[0]))
