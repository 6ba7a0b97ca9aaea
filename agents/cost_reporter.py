"""
Cost Reporter: 재시도 횟수 기반 예상 비용 집계 (순수 함수, 제어 흐름에 사용하지 않음)

기본 씬 비용 = script + keyframe + video, 성공한 씬만 합산
재시도 비용 = 씬 단가 × 0.33 × 씬 재시도 수, 실패한 씬 포함 모든 씬 합산
총 비용 = 기본 비용(그라운딩 + 스타일) + 기본 씬 비용 + 재시도 비용
"""

from typing import Dict, Iterable, Optional

from schemas import (
    ApiCallCounts,
    CostBreakdown,
    CostReport,
    HierarchicalRetryState,
)
from utils.constants import BASE_COST_USD, PRICING, RETRY_COST_FACTOR, SCENE_COUNT


class CostReporter:
    def __init__(
        self,
        pricing: Optional[Dict[str, float]] = None,
        base_cost: float = BASE_COST_USD,
        retry_factor: float = RETRY_COST_FACTOR,
    ):
        self.pricing = pricing or dict(PRICING)
        self.base_cost = base_cost
        self.retry_factor = retry_factor

    @property
    def scene_unit_cost(self) -> float:
        return self.pricing["script"] + self.pricing["keyframe"] + self.pricing["video"]

    def build_report(
        self,
        job_id: str,
        retry_state: HierarchicalRetryState,
        successful_scenes: Iterable[int],
        elapsed_ms: int,
        api_calls: Optional[ApiCallCounts] = None,
    ) -> CostReport:
        successful = set(successful_scenes)
        script = keyframe = video = overhead = 0.0

        for scene in retry_state.scenes:
            overhead += self.scene_unit_cost * self.retry_factor * scene.total_retries
            if scene.scene_number not in successful:
                continue
            script += self.pricing["script"]
            keyframe += self.pricing["keyframe"]
            video += self.pricing["video"]

        total = self.base_cost + script + keyframe + video + overhead
        breakdown = CostBreakdown(
            base_generation=self.base_cost,
            script_generation=round(script, 4),
            keyframe_generation=round(keyframe, 4),
            video_generation=round(video, 4),
            retry_overhead=round(overhead, 4),
            total=round(total, 4),
        )
        return CostReport(
            job_id=job_id,
            breakdown=breakdown,
            api_calls=api_calls or ApiCallCounts(),
            retry_breakdown={s.scene_number: s.total_retries for s in retry_state.scenes},
            elapsed_time_ms=elapsed_ms,
            cache_hit=False,
        )

    def cache_hit_report(self, job_id: str, elapsed_ms: int = 0) -> CostReport:
        """캐시 히트는 비용 0"""
        return CostReport(job_id=job_id, elapsed_time_ms=elapsed_ms, cache_hit=True)

    def estimate_cost(self, scene_count: int = SCENE_COUNT, expected_retries_per_scene: float = 0.0) -> float:
        """실행 전 예상 비용 (USD)"""
        per_scene = self.scene_unit_cost * (1 + self.retry_factor * expected_retries_per_scene)
        return round(self.base_cost + per_scene * scene_count, 4)

    @staticmethod
    def format_report(report: CostReport) -> str:
        b = report.breakdown
        rows = [
            ("Base (grounding + style)", b.base_generation),
            ("Script generation", b.script_generation),
            ("Keyframe generation", b.keyframe_generation),
            ("Video generation", b.video_generation),
            ("Retry overhead", b.retry_overhead),
        ]
        width = 28
        lines = [
            f"Cost Report: {report.job_id}" + (" (cache hit)" if report.cache_hit else ""),
            "-" * (width + 12),
        ]
        lines += [f"{label:<{width}}${value:>10.4f}" for label, value in rows]
        lines.append("-" * (width + 12))
        lines.append(f"{'TOTAL':<{width}}${b.total:>10.4f}")
        lines.append(
            f"API calls: text={report.api_calls.text}, image={report.api_calls.image}, "
            f"video={report.api_calls.video}"
        )
        if report.retry_breakdown:
            retries = ", ".join(f"scene {n}: {r}" for n, r in sorted(report.retry_breakdown.items()))
            lines.append(f"Retries: {retries}")
        lines.append(f"Elapsed: {report.elapsed_time_ms / 1000:.1f}s")
        return "\n".join(lines)
