"""
Hierarchical Retry: 씬별 단계(script → keyframe → video) 재시도 상태 머신.

모든 전이는 순수 함수입니다. 입력 상태를 수정하지 않고 새 상태를 반환합니다.

정책:
- 단계 성공: 산출물 저장 후 다음 단계로 이동 (video 의 다음은 video, 종단)
- 단계 실패: 해당 단계 카운터 +1 (한도에서 포화)
  - 한도 미만 → 같은 단계 재시도
  - 한도 도달 → 예산이 남은 가장 가까운 이전 단계로 폴백
    (폴백은 돌아간 단계의 재시도 1회를 소모하고, 그 이후 단계 산출물을 폐기.
     예: keyframe 3회 실패 → script 로 폴백한 직후 script_retries == 1.
     폴백 자체가 예산을 쓰므로 script ↔ keyframe 왕복은 유한 횟수로 끝남)
  - 이전 단계에도 예산 없음 → 씬 종단 실패
- 재시도 불가 실패 (retryable=False): 같은 단계를 반복하지 않고 곧바로 폴백
"""

from typing import List, Optional, Tuple

from schemas import (
    HierarchicalRetryState,
    RetryDecision,
    RetryLimits,
    SceneRetryState,
    SceneScript,
    Stage,
)
from utils.constants import SCENE_NUMBERS
from utils.logger import get_logger

logger = get_logger("hierarchical_retry")

STAGE_ORDER: Tuple[Stage, ...] = (Stage.SCRIPT, Stage.KEYFRAME, Stage.VIDEO)

# 단계별 폐기 대상 산출물 필드
_STAGE_OUTPUT_FIELDS = {
    Stage.SCRIPT: ("script",),
    Stage.KEYFRAME: ("keyframe_bytes", "keyframe_url"),
    Stage.VIDEO: ("video_bytes", "video_url"),
}


def create_retry_state(job_id: str, limits: Optional[RetryLimits] = None) -> HierarchicalRetryState:
    """3개 씬의 초기 재시도 상태 생성."""
    limits = limits or RetryLimits()
    per_scene = limits.script + limits.keyframe + limits.video
    return HierarchicalRetryState(
        job_id=job_id,
        scenes=tuple(SceneRetryState(scene_number=n) for n in SCENE_NUMBERS),
        limits=limits,
        total_attempts=0,
        max_total_attempts=per_scene * len(SCENE_NUMBERS),
    )


def next_stage(stage: Stage) -> Stage:
    """다음 단계. video 는 종단이므로 자기 자신."""
    idx = STAGE_ORDER.index(Stage(stage))
    return STAGE_ORDER[min(idx + 1, len(STAGE_ORDER) - 1)]


def _replace_scene(state: HierarchicalRetryState, scene: SceneRetryState, **update) -> HierarchicalRetryState:
    scenes = list(state.scenes)
    scenes[scene.scene_number - 1] = scene
    return state.model_copy(update={"scenes": tuple(scenes), **update})


def _cleared_outputs(from_stage: Stage) -> dict:
    """from_stage 와 그 이후 단계의 산출물을 비우는 update dict."""
    update = {}
    for stage in STAGE_ORDER[STAGE_ORDER.index(from_stage):]:
        for field in _STAGE_OUTPUT_FIELDS[stage]:
            update[field] = None
    return update


def record_stage_success(
    state: HierarchicalRetryState,
    scene_number: int,
    stage: Stage,
    *,
    script: Optional[SceneScript] = None,
    keyframe_bytes: Optional[bytes] = None,
    keyframe_url: Optional[str] = None,
    video_bytes: Optional[bytes] = None,
    video_url: Optional[str] = None,
) -> HierarchicalRetryState:
    """
    단계 성공 기록.

    Raises:
        ValueError: 현재 단계가 아니거나, 선행 산출물/해당 산출물이 없을 때
    """
    stage = Stage(stage)
    scene = state.scene(scene_number)

    if scene.terminally_failed:
        raise ValueError(f"Scene {scene_number} already terminally failed")
    if scene.current_stage != stage:
        raise ValueError(
            f"Scene {scene_number}: cannot record {stage.value} success while at {scene.current_stage.value}"
        )

    update = {"last_error": None, "current_stage": next_stage(stage)}
    if stage == Stage.SCRIPT:
        if script is None:
            raise ValueError("script output required")
        update["script"] = script
    elif stage == Stage.KEYFRAME:
        if scene.script is None:
            raise ValueError(f"Scene {scene_number}: keyframe before script")
        if not keyframe_bytes and not keyframe_url:
            raise ValueError("keyframe output required")
        update["keyframe_bytes"] = keyframe_bytes
        update["keyframe_url"] = keyframe_url
    else:
        if scene.script is None or (scene.keyframe_bytes is None and scene.keyframe_url is None):
            raise ValueError(f"Scene {scene_number}: video before script/keyframe")
        if not video_bytes and not video_url:
            raise ValueError("video output required")
        update["video_bytes"] = video_bytes
        update["video_url"] = video_url

    return _replace_scene(state, scene.model_copy(update=update))


def _fallback_stage(scene: SceneRetryState, failed: Stage, limits: RetryLimits) -> Optional[Stage]:
    """예산이 남은 가장 가까운 이전 단계."""
    for stage in reversed(STAGE_ORDER[:STAGE_ORDER.index(failed)]):
        if scene.retries_for(stage) < limits.for_stage(stage):
            return stage
    return None


def record_stage_failure(
    state: HierarchicalRetryState,
    scene_number: int,
    stage: Stage,
    error: str,
    retryable: bool = True,
) -> Tuple[HierarchicalRetryState, RetryDecision]:
    """
    단계 실패 기록 후 재시도 / 폴백 / 종단 실패를 결정.

    retryable=False 면 같은 단계 재시도 없이 해당 단계 예산을 소진하고 바로 폴백합니다.

    Returns:
        (새 상태, RetryDecision)
    """
    stage = Stage(stage)
    limits = state.limits
    scene = state.scene(scene_number)
    if scene.terminally_failed or scene.current_stage != stage:
        raise ValueError(
            f"Scene {scene_number}: cannot record {stage.value} failure while at {scene.current_stage.value}"
        )
    counter = f"{stage.value}_retries"
    limit = limits.for_stage(stage)

    retries = min(scene.retries_for(stage) + 1, limit) if retryable else limit
    scene = scene.model_copy(update={counter: retries, "last_error": error})
    total = state.total_attempts + 1

    if retries < limit:
        logger.info(
            f"[Retry] Scene {scene_number}: retrying {stage.value} (attempt {retries + 1}/{limit})"
        )
        decision = RetryDecision(
            scene_number=scene_number,
            stage=stage,
            should_continue=True,
            next_stage=stage,
            error=error,
        )
        return _replace_scene(state, scene, total_attempts=total), decision

    fallback = _fallback_stage(scene, stage, limits)
    if fallback is not None:
        logger.warning(f"[Retry] Scene {scene_number}: {stage.value} exhausted, falling back to {fallback.value}")
        fb_counter = f"{fallback.value}_retries"
        scene = scene.model_copy(update={
            fb_counter: scene.retries_for(fallback) + 1,
            "current_stage": fallback,
            **_cleared_outputs(fallback),
        })
        decision = RetryDecision(
            scene_number=scene_number,
            stage=stage,
            should_continue=True,
            next_stage=fallback,
            is_fallback=True,
            error=f"{stage.value} exhausted, retrying from {fallback.value}",
        )
        return _replace_scene(state, scene, total_attempts=total), decision

    logger.error(f"[Retry] Scene {scene_number}: all retries exhausted ({error})")
    scene = scene.model_copy(update={"terminally_failed": True})
    decision = RetryDecision(
        scene_number=scene_number,
        stage=stage,
        should_continue=False,
        error=f"All retries exhausted for scene {scene_number}: {error}",
    )
    return _replace_scene(state, scene, total_attempts=total), decision


# =============================================================================
# 조회
# =============================================================================

def is_scene_complete(scene: SceneRetryState) -> bool:
    """video 단계까지 성공했고 모든 산출물이 있는 씬."""
    return (
        scene.current_stage == Stage.VIDEO
        and scene.last_error is None
        and not scene.terminally_failed
        and scene.script is not None
        and (scene.keyframe_bytes is not None or scene.keyframe_url is not None)
        and (scene.video_bytes is not None or scene.video_url is not None)
    )


def is_scene_exhausted(scene: SceneRetryState, limits: RetryLimits) -> bool:
    return all(scene.retries_for(stage) >= limits.for_stage(stage) for stage in STAGE_ORDER)


def is_job_complete(state: HierarchicalRetryState) -> bool:
    return all(is_scene_complete(scene) for scene in state.scenes)


def is_job_failed(state: HierarchicalRetryState) -> bool:
    """모든 씬이 종단 실패한 경우에만 잡 실패."""
    return all(scene.terminally_failed for scene in state.scenes)


def get_scenes_needing_work(state: HierarchicalRetryState) -> List[int]:
    return [
        scene.scene_number
        for scene in state.scenes
        if not scene.terminally_failed and not is_scene_complete(scene)
    ]


def get_completed_scenes(state: HierarchicalRetryState) -> List[SceneRetryState]:
    """완료된 씬 (씬 번호 순)."""
    return sorted(
        (scene for scene in state.scenes if is_scene_complete(scene)),
        key=lambda s: s.scene_number,
    )


def reset_scene_from_script(state: HierarchicalRetryState, scene_number: int) -> HierarchicalRetryState:
    """스크립트부터 다시 생성하도록 씬 초기화 (카운터 유지)."""
    scene = state.scene(scene_number)
    scene = scene.model_copy(update={
        "current_stage": Stage.SCRIPT,
        "last_error": None,
        **_cleared_outputs(Stage.SCRIPT),
    })
    return _replace_scene(state, scene)


def reset_scene_from_keyframe(state: HierarchicalRetryState, scene_number: int) -> HierarchicalRetryState:
    scene = state.scene(scene_number)
    if scene.script is None:
        raise ValueError(f"Scene {scene_number}: no script to keep")
    scene = scene.model_copy(update={
        "current_stage": Stage.KEYFRAME,
        "last_error": None,
        **_cleared_outputs(Stage.KEYFRAME),
    })
    return _replace_scene(state, scene)


def backoff_delay(stage: Stage, attempt: int, limits: RetryLimits) -> float:
    """재시도 대기 시간 (attempt × 단계 기준 지연)."""
    base = limits.base_delay_sec.get(Stage(stage).value, 1.0)
    return max(attempt, 1) * base


def get_retry_state_summary(state: HierarchicalRetryState) -> str:
    parts = [f"Total attempts: {state.total_attempts}/{state.max_total_attempts}"]
    for scene in state.scenes:
        if is_scene_complete(scene):
            mark = "✅"
        elif scene.terminally_failed:
            mark = "❌"
        else:
            mark = "⏳"
        parts.append(
            f"Scene {scene.scene_number} {mark} "
            f"(S:{scene.script_retries} K:{scene.keyframe_retries} V:{scene.video_retries})"
        )
    return " | ".join(parts)


def get_failure_reason(state: HierarchicalRetryState) -> str:
    """종단 실패 씬별 사유를 합친 메시지."""
    reasons = [
        f"Scene {scene.scene_number}: {scene.last_error} ({scene.total_retries} retries)"
        for scene in state.scenes
        if scene.terminally_failed
    ]
    return "; ".join(reasons)
