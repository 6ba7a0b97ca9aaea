"""
공용 테스트 픽스처와 가짜 협력 객체

네트워크/ffmpeg 없이 파이프라인을 구동하기 위한 in-test fake 들입니다.
"""
import asyncio
import json
import os
import shutil
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from schemas import (  # noqa: E402
    AssemblyMode,
    AssemblyOutcome,
    Character,
    BookFacts,
    PlotBeat,
    RetryLimits,
    SceneScript,
    SceneType,
)
from utils.error_manager import ErrorManager  # noqa: E402
from utils.errors import KeyframeGenerationError, ScriptGenerationError, VideoGenerationError  # noqa: E402


# ==========================================================================
# Fakes
# ==========================================================================

SCENE_TEXT = {
    1: ("어린 왕자가 작은 별에서 친구를 기다려요.\n오늘은 어떤 만남이 있을까요?", "A happy little prince waits on a tiny planet"),
    2: ("별들을 여행하며 모험을 떠나요.\n새로운 친구를 만나 웃음이 가득해요.", "The prince travels between tiny planets with a smile"),
    3: ("진짜 소중한 것은 마음으로 봐야 해요.\n책 속에서 함께 찾아봐요!", "The prince and a curious fox look at the sky together"),
}


def script_json(scene_number, narration=None, dialogue="", speaker=""):
    default_narration, visual = SCENE_TEXT[scene_number]
    return json.dumps({
        "narration": narration if narration is not None else default_narration,
        "characterDialogue": dialogue,
        "characterName": speaker,
        "visualDescription": visual,
        "keyframePrompt": f"scene {scene_number}, the prince on a tiny planet",
        "videoPrompt": f"scene {scene_number}, slow camera push in",
    }, ensure_ascii=False)


class FakeProvider:
    """
    프롬프트의 씬 번호로 스크립트 JSON 을 돌려주는 가짜 GenerationProvider.

    fail_plan: {(stage, scene_number): 실패 횟수}
    non_retryable: 재시도 불가 오류로 실패시킬 (stage, scene_number) 집합
    """

    def __init__(self, fail_plan=None, narration_override=None, non_retryable=()):
        self.fail_plan = dict(fail_plan or {})
        self.non_retryable = set(non_retryable)
        self.narration_override = dict(narration_override or {})
        self.calls = {"text": 0, "keyframe": 0, "video": 0}
        self.text_prompts = []

    def name(self):
        return "fake"

    def _maybe_fail(self, stage, scene_number, error_cls):
        key = (stage, scene_number)
        if self.fail_plan.get(key, 0) > 0:
            self.fail_plan[key] -= 1
            raise error_cls(
                f"simulated {stage} failure for scene {scene_number}", retryable=key not in self.non_retryable
            )

    @staticmethod
    def _scene_from_prompt(prompt):
        for n in (1, 2, 3):
            if f"scene {n}" in prompt or f"씬 {n}/3" in prompt:
                return n
        return 1

    async def generate_text(self, prompt):
        await asyncio.sleep(0)
        self.calls["text"] += 1
        self.text_prompts.append(prompt)
        n = self._scene_from_prompt(prompt)
        self._maybe_fail("script", n, ScriptGenerationError)
        return script_json(n, narration=self.narration_override.get(n))

    async def generate_keyframe(self, prompt):
        await asyncio.sleep(0)
        self.calls["keyframe"] += 1
        n = self._scene_from_prompt(prompt)
        self._maybe_fail("keyframe", n, KeyframeGenerationError)
        return f"PNG-{n}".encode()

    async def generate_video(self, keyframe, prompt, duration_seconds=8):
        await asyncio.sleep(0)
        self.calls["video"] += 1
        n = self._scene_from_prompt(prompt)
        self._maybe_fail("video", n, VideoGenerationError)
        return f"MP4-{n};".encode()


class FakeAssembler:
    """장면 파일을 이어 붙여 출력 파일을 만드는 VideoAssembler 대역"""

    def __init__(self, mode=AssemblyMode.SUBTITLED, metadata=None):
        self.mode = mode
        self.metadata = metadata
        self.scene_paths = []
        self.subtitle_text = None
        self.style = None

    def assemble(self, scene_paths, subtitle_path, output_path, style=None):
        self.scene_paths = list(scene_paths)
        self.style = style
        if subtitle_path:
            with open(subtitle_path, "r", encoding="utf-8") as f:
                self.subtitle_text = f.read()
        with open(output_path, "wb") as out:
            for path in scene_paths:
                with open(path, "rb") as f:
                    out.write(f.read())
        return AssemblyOutcome(mode=self.mode, output_path=output_path)

    def probe_metadata(self, video_path):
        if self.metadata is None:
            raise OSError("no metadata in tests")
        return dict(self.metadata)


class EmptyCatalog:
    def __init__(self):
        self.calls = 0

    async def search(self, title, author=None):
        self.calls += 1
        return []


# ==========================================================================
# Fixtures
# ==========================================================================

@pytest.fixture(autouse=True)
def isolated_error_log(tmp_path, monkeypatch):
    monkeypatch.setattr(ErrorManager, "LOG_FILE", str(tmp_path / "pipeline_errors.log"))


@pytest.fixture
def zero_delay_limits():
    return RetryLimits(base_delay_sec={"script": 0.0, "keyframe": 0.0, "video": 0.0})


@pytest.fixture
def book_facts():
    return BookFacts(
        canonical_title="숲속의 작은 여우",
        author="김작가",
        logline="작은 여우가 숲에서 친구들을 만나며 우정을 배우는 이야기예요.",
        main_characters=(
            Character(name="여우", role="protagonist", appearance="Small fox with a fluffy tail"),
        ),
        plot_beats=(
            PlotBeat(order=1, abstract_event="숲속의 아침", emotional_tone="호기심"),
            PlotBeat(order=2, abstract_event="새 친구와의 만남", emotional_tone="설렘"),
            PlotBeat(order=3, abstract_event="함께하는 저녁", emotional_tone="따뜻함"),
        ),
        setting="햇살 가득한 숲",
        themes=("우정", "용기"),
        target_audience="어린이 (초등학생)",
        source_confidence=0.8,
        source_id="test-fox",
    )


def make_script(scene_number, narration="친구와 함께 모험을 떠나요.", **overrides):
    """테스트용 SceneScript"""
    scene_types = {1: SceneType.INTRO, 2: SceneType.BODY, 3: SceneType.OUTRO}
    data = dict(
        scene_number=scene_number,
        scene_type=scene_types[scene_number],
        narration=narration,
        visual_description="A happy fox smiles in the forest",
        keyframe_prompt="keyframe",
        video_prompt="video",
    )
    data.update(overrides)
    return SceneScript(**data)


@pytest.fixture
def scripts():
    return [make_script(n) for n in (1, 2, 3)]


@pytest.fixture
def clean_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    yield path
    shutil.rmtree(path, ignore_errors=True)
