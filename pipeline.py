"""
BookTrailer 통합 파이프라인

책 제목 하나를 24초(8초 × 3씬) 북트레일러로 만드는 잡 실행기.

실행 플로우:
1. CacheStore - 같은 (제목, 저자) 완료 결과가 있으면 즉시 반환
2. BookGrounder - 카탈로그 → 오프라인 테이블 → 최소 사실
3. StyleBible - 모든 씬이 공유하는 비주얼 스타일
4. ScenePlanner - 3개 씬 기획
5. 씬별 script → keyframe → video (계층적 재시도)
6. QCRunner - Safety → Typography → Consistency → Scoring (+ 스크립트 재생성)
7. 자막(WebVTT) + ComposerAgent 합성
8. Storage 업로드, CostReporter, 캐시
"""

import asyncio
import json
import os
import shutil
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

from agents.composer_agent import ComposerAgent
from agents.cost_reporter import CostReporter
from agents.grounding_agent import BookCatalog, BookGrounder
from agents.hierarchical_retry import (
    backoff_delay,
    create_retry_state,
    get_completed_scenes,
    get_failure_reason,
    get_retry_state_summary,
    is_job_failed,
    is_scene_complete,
    record_stage_failure,
    record_stage_success,
)
from agents.qc_runner import QCRunner
from agents.scene_planner import ScenePlanner
from agents.style_bible import build_style_bible
from agents.subtitle_utils import generate_vtt
from agents.typography_validator import auto_fix_typography
from config import load_pipeline_config, load_qc_rules, load_retry_limits
from schemas import (
    ApiCallCounts,
    BookFacts,
    HierarchicalRetryState,
    JobRequest,
    JobStatus,
    QCReport,
    QCRules,
    QCStatus,
    RetryLimits,
    ScenePlan,
    SceneScript,
    Stage,
    StyleBible,
    VideoGenerationResult,
    now_iso,
)
from utils.cache_store import CacheStore
from utils.error_manager import ErrorManager
from utils.errors import GenerationError
from utils.ffmpeg_utils import VideoAssembler, force_style_from_plan
from utils.logger import get_logger
from utils.storage import StorageProvider, get_storage_provider

logger = get_logger("pipeline")


def generate_job_id() -> str:
    """job_<epoch ms>_<9자 랜덤>"""
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def public_url(url: str) -> str:
    """로컬 스토리지 URL 은 API 게이트웨이 경로(/api/videos/...)로 노출"""
    if url.startswith("/videos/"):
        return f"/api{url}"
    return url


def save_intermediate_artifacts(
    output_dir: str,
    book_facts: BookFacts,
    style_bible: StyleBible,
    scene_plans: Sequence[ScenePlan],
    scripts: Sequence[SceneScript],
) -> Dict[str, str]:
    """
    디버깅/재현용 중간 산출물을 JSON 으로 저장.

    Returns:
        {이름: 파일 경로}
    """
    os.makedirs(output_dir, exist_ok=True)
    artifacts = {
        "bookFacts.json": book_facts.model_dump(mode="json"),
        "styleBible.json": style_bible.model_dump(mode="json"),
        "scenePlans.json": [p.model_dump(mode="json") for p in scene_plans],
        "scripts.json": [s.model_dump(mode="json") for s in scripts],
    }
    paths = {}
    for name, data in artifacts.items():
        path = os.path.join(output_dir, name)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        paths[name] = path
    logger.info(f"[Pipeline] Saved intermediate artifacts to {output_dir}")
    return paths


class TrailerPipeline:
    """
    BookTrailer 통합 파이프라인

    모든 협력 객체는 생성자로 주입합니다. 생략하면 환경변수/설정 파일 기반 기본값을 사용합니다.

    Args:
        provider: GenerationProvider (텍스트/키프레임/영상)
        catalog: BookCatalog (None 이면 오프라인 테이블 → 최소 사실로 진행)
        storage: StorageProvider
        cache: CacheStore (여러 잡이 공유)
        assembler: VideoAssembler
        rules: QCRules
        limits: RetryLimits
    """

    def __init__(
        self,
        provider,
        catalog: Optional[BookCatalog] = None,
        storage: Optional[StorageProvider] = None,
        cache: Optional[CacheStore] = None,
        assembler: Optional[VideoAssembler] = None,
        rules: Optional[QCRules] = None,
        limits: Optional[RetryLimits] = None,
        temp_dir: Optional[str] = None,
        artifacts_dir: Optional[str] = None,
        max_script_regenerations: Optional[int] = None,
        cost_reporter: Optional[CostReporter] = None,
    ):
        config = load_pipeline_config()

        self.provider = provider
        self.catalog = catalog
        self.storage = storage or get_storage_provider(
            config["storage"]["type"],
            **({"base_path": config["storage"]["path"], "public_prefix": config["storage"]["public_prefix"]}
               if config["storage"]["type"] == "local" else {}),
        )
        self.cache = cache if cache is not None else CacheStore()
        self.composer = ComposerAgent(assembler)
        self.rules = rules or load_qc_rules()
        self.limits = limits or load_retry_limits()
        self.qc = QCRunner(self.rules)
        self.cost_reporter = cost_reporter or CostReporter()
        self.temp_dir = temp_dir or config["paths"]["temp_dir"]
        self.artifacts_dir = artifacts_dir
        if max_script_regenerations is None:
            max_script_regenerations = config["qc"]["max_script_regenerations"]
        self.max_script_regenerations = max_script_regenerations

    # =========================================================================
    # Entry point
    # =========================================================================

    async def execute(self, request: JobRequest) -> VideoGenerationResult:
        """
        잡 하나 실행. 예외를 던지지 않고 항상 종단 결과를 반환합니다.

        캐시 히트면 이전 완료 결과를 그대로(cache_hit=True) 반환하고 이후 단계는 건너뜁니다.
        """
        start = time.time()
        job_id = generate_job_id()

        async def build() -> VideoGenerationResult:
            return await self._run_job(job_id, request, start)

        result = await self.cache.get_or_build(request.title, request.author, build)
        if result.cache_hit:
            elapsed_ms = int((time.time() - start) * 1000)
            logger.info(f"[Pipeline] Cache hit for \"{request.title}\" (job {result.job_id})")
            logger.info("\n" + CostReporter.format_report(self.cost_reporter.cache_hit_report(job_id, elapsed_ms)))
        return result

    async def _run_job(self, job_id: str, request: JobRequest, start: float) -> VideoGenerationResult:
        logger.info("=" * 60)
        logger.info(f"[Pipeline] Job {job_id} started: \"{request.title}\"" + (f" by {request.author}" if request.author else ""))
        logger.info("=" * 60)

        work_dir = os.path.join(self.temp_dir, job_id)
        try:
            result = await self._generate(job_id, request, start, work_dir)
        except Exception as e:
            logger.exception(f"[Pipeline] Job {job_id} failed")
            ErrorManager.log_error("Pipeline", str(e), details=type(e).__name__, severity="critical", job_id=job_id)
            result = VideoGenerationResult(
                job_id=job_id,
                status=JobStatus.FAILED,
                error=str(e),
                completed_at=now_iso(),
            )
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        elapsed = time.time() - start
        logger.info("=" * 60)
        logger.info(f"[Pipeline] Job {job_id} {result.status.value} in {elapsed:.1f}s")
        logger.info("=" * 60)
        return result

    # =========================================================================
    # Stages
    # =========================================================================

    async def _generate(self, job_id: str, request: JobRequest, start: float, work_dir: str) -> VideoGenerationResult:
        api_calls = ApiCallCounts()
        language = request.language

        # Step 1: Grounding
        logger.info("[STEP 1/6] Grounding book facts...")
        grounder = BookGrounder(catalog=self.catalog, text_provider=self.provider, preferred_language=language.value)
        grounding = await grounder.ground(request.title, request.author)
        book_facts = grounding.book_facts
        if grounding.source == "catalog":
            api_calls.text += 1

        # Step 2: Style bible + scene plans
        logger.info("[STEP 2/6] Building style bible and scene plans...")
        style_bible = build_style_bible(book_facts)
        planner = ScenePlanner(self.provider, language)
        plans = planner.plan(book_facts)

        # Step 3: 씬별 생성
        logger.info("[STEP 3/6] Generating scenes (script → keyframe → video)...")
        state = create_retry_state(job_id, self.limits)
        for plan in plans:
            state = await self._generate_scene(state, planner, book_facts, style_bible, plan, api_calls)
        logger.info(f"[Pipeline] {get_retry_state_summary(state)}")

        if is_job_failed(state):
            reason = get_failure_reason(state)
            ErrorManager.log_error("Pipeline", "All scenes failed to generate", details=reason, job_id=job_id)
            return VideoGenerationResult(
                job_id=job_id,
                status=JobStatus.FAILED,
                error=f"All scenes failed to generate: {reason}",
                completed_at=now_iso(),
            )

        completed = get_completed_scenes(state)
        successful = [scene.scene_number for scene in completed]
        if len(successful) < len(plans):
            logger.warning(f"[Pipeline] Partial success: scenes {successful} of {len(plans)}")

        # Step 4: QC
        logger.info("[STEP 4/6] Running QC pipeline...")
        scripts = [scene.script for scene in completed]
        scripts, qc_report = await self._run_qc(job_id, scripts, planner, book_facts, style_bible, plans, language, api_calls)
        if qc_report.safety.status == QCStatus.FAIL:
            message = f"Safety check failed: {', '.join(qc_report.safety.violations)}"
            ErrorManager.log_error("QC", message, job_id=job_id)
            return VideoGenerationResult(
                job_id=job_id,
                status=JobStatus.FAILED,
                qc_report=qc_report,
                error=message,
                successful_scenes=successful,
                completed_at=now_iso(),
            )

        if self.artifacts_dir:
            save_intermediate_artifacts(os.path.join(self.artifacts_dir, job_id), book_facts, style_bible, plans, scripts)

        # Step 5: 자막 + 합성
        logger.info("[STEP 5/6] Composing trailer...")
        vtt_content = generate_vtt(scripts, language, self.rules.typography)
        scene_videos = {scene.scene_number: scene.video_bytes for scene in completed}
        outcome = await self.composer.compose(
            scene_videos, vtt_content, work_dir, style=force_style_from_plan(style_bible.typography, language)
        )

        metadata = await self.composer.probe(outcome.output_path)
        if metadata:
            qc_report = self._rescore(qc_report, metadata)

        # Step 6: 업로드 + 비용
        logger.info("[STEP 6/6] Uploading results...")
        base_name = f"{request.book_id or job_id}-{int(time.time() * 1000)}"
        with open(outcome.output_path, "rb") as f:
            video_data = f.read()
        video_url = await asyncio.to_thread(self.storage.save, f"{base_name}.mp4", video_data, "video/mp4")
        subtitle_url = await asyncio.to_thread(
            self.storage.save, f"{base_name}.vtt", vtt_content.encode("utf-8"), "text/vtt"
        )

        elapsed_ms = int((time.time() - start) * 1000)
        cost_report = self.cost_reporter.build_report(job_id, state, successful, elapsed_ms, api_calls)
        logger.info("\n" + CostReporter.format_report(cost_report))

        return VideoGenerationResult(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            video_url=public_url(video_url),
            subtitle_url=public_url(subtitle_url),
            qc_report=qc_report,
            cost_report=cost_report,
            successful_scenes=successful,
            assembly_mode=outcome.mode,
            completed_at=now_iso(),
        )

    async def _generate_scene(
        self,
        state: HierarchicalRetryState,
        planner: ScenePlanner,
        book_facts: BookFacts,
        style_bible: StyleBible,
        plan: ScenePlan,
        api_calls: ApiCallCounts,
    ) -> HierarchicalRetryState:
        """한 씬을 완료 또는 종단 실패까지 진행"""
        n = plan.scene_number
        while True:
            scene = state.scene(n)
            if is_scene_complete(scene) or scene.terminally_failed:
                return state

            stage = scene.current_stage
            try:
                if stage == Stage.SCRIPT:
                    api_calls.text += 1
                    script = await planner.generate_script(book_facts, style_bible, plan)
                    state = record_stage_success(state, n, stage, script=script)
                elif stage == Stage.KEYFRAME:
                    api_calls.image += 1
                    keyframe = await self.provider.generate_keyframe(scene.script.keyframe_prompt)
                    state = record_stage_success(state, n, stage, keyframe_bytes=keyframe)
                else:
                    api_calls.video += 1
                    video = await self.provider.generate_video(
                        scene.keyframe_bytes, scene.script.video_prompt, scene.script.duration_sec
                    )
                    state = record_stage_success(state, n, stage, video_bytes=video)
                logger.info(f"[Pipeline] Scene {n}: {stage.value} OK")
            except (GenerationError, ValueError) as e:
                # ValueError: 빈 산출물 (record_stage_success 검증)
                state, decision = record_stage_failure(
                    state, n, stage, str(e), retryable=getattr(e, "retryable", True)
                )
                if not decision.should_continue:
                    ErrorManager.log_error(
                        "Pipeline",
                        decision.error,
                        details=f"scene={n} stage={stage.value}",
                        job_id=state.job_id,
                    )
                    return state
                retry_stage = decision.next_stage or stage
                delay = backoff_delay(retry_stage, state.scene(n).retries_for(retry_stage), self.limits)
                if delay > 0:
                    await asyncio.sleep(delay)

    async def _run_qc(
        self,
        job_id: str,
        scripts: List[SceneScript],
        planner: ScenePlanner,
        book_facts: BookFacts,
        style_bible: StyleBible,
        plans: Sequence[ScenePlan],
        language,
        api_calls: ApiCallCounts,
    ):
        """
        QC 실행 후 정책에 따라 자막 자동 수정 / 스크립트 재생성을 반복합니다.

        영상은 이미 생성되었으므로 재생성은 나레이션과 대사만 교체합니다.
        Safety 실패는 즉시 반환합니다.
        """
        report = self.qc.run(job_id, scripts, style_bible, language)
        regenerations = 0
        plans_by_number = {p.scene_number: p for p in plans}

        while (
            report.overall == QCStatus.FAIL
            and report.safety.status == QCStatus.PASS
            and regenerations < self.max_script_regenerations
            and self.qc.should_retry(report, regenerations)
        ):
            regenerations += 1
            logger.info(f"[QC] Retry {regenerations}/{self.max_script_regenerations}: {self.qc.retry_reason(report)}")

            if report.typography.status == QCStatus.FAIL:
                scripts = auto_fix_typography(scripts, self.rules.typography, language)
                report = self.qc.run(job_id, scripts, style_bible, language)
                if report.overall == QCStatus.PASS:
                    break

            targets = self.qc.typography_validator.scenes_with_violations(report.typography)
            if not targets:
                logger.info("[QC] No scene-level violations to regenerate")
                break

            feedback = list(report.typography.violations)
            updated = []
            for script in scripts:
                if script.scene_number not in targets:
                    updated.append(script)
                    continue
                api_calls.text += 1
                try:
                    fresh = await planner.generate_script(
                        book_facts, style_bible, plans_by_number[script.scene_number], feedback
                    )
                except GenerationError as e:
                    logger.warning(f"[QC] Script regeneration failed for scene {script.scene_number}: {e}")
                    updated.append(script)
                    continue
                updated.append(script.model_copy(update={
                    "narration": fresh.narration,
                    "character_dialogue": fresh.character_dialogue,
                    "character_name": fresh.character_name,
                }))
            scripts = updated
            report = self.qc.run(job_id, scripts, style_bible, language)

        if report.overall == QCStatus.FAIL and report.safety.status == QCStatus.PASS:
            logger.warning(f"[QC] Accepting scripts with QC failures: {self.qc.retry_reason(report)}")
        return scripts, report

    def _rescore(self, report: QCReport, metadata: Dict[str, Any]) -> QCReport:
        """합성 영상의 기술 메타데이터를 반영해 점수 재계산"""
        scoring = self.qc.scorer.score(report.typography, report.consistency, report.safety, metadata)
        return report.model_copy(update={
            "scoring": scoring,
            "overall": scoring.status,
            "overall_score": scoring.overall_score,
        })


def run_pipeline(
    title: str,
    author: Optional[str] = None,
    book_id: Optional[str] = None,
    language: str = "ko",
    provider=None,
    catalog: Optional[BookCatalog] = None,
) -> VideoGenerationResult:
    """
    파이프라인 간편 실행 함수 (동기).

    Args:
        title: 책 제목
        author: 저자 (선택)
        provider: GenerationProvider (기본: create_provider())
        catalog: BookCatalog (기본: GoogleBooksCatalog)
    """
    from agents.generation_provider import create_provider
    from agents.grounding_agent import GoogleBooksCatalog

    pipeline = TrailerPipeline(
        provider=provider or create_provider(),
        catalog=catalog or GoogleBooksCatalog(),
    )
    request = JobRequest(title=title, author=author, book_id=book_id, language=language)
    return asyncio.run(pipeline.execute(request))
