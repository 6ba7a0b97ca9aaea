"""
Video Scorer (QC 4단계): 게이트 결과 종합 점수 + 재시도 정책
"""

from typing import Any, Dict, Optional

from schemas import (
    ConsistencyQCResult,
    QCReport,
    QCStatus,
    SafetyQCResult,
    ScoringThresholds,
    TypographyQCResult,
    VideoScoreResult,
)
from utils.logger import get_logger

logger = get_logger("video_scorer")


class VideoScorer:
    """
    가중 평균 점수 산출기

    Args:
        thresholds: ScoringThresholds (load_qc_rules().scoring)
    """

    def __init__(self, thresholds: Optional[ScoringThresholds] = None):
        self.thresholds = thresholds or ScoringThresholds()

    def technical_score(self, metadata: Optional[Dict[str, Any]] = None) -> float:
        """
        해상도 / 길이 / fps 충족 비율. 메타데이터가 없으면 1.0.

        Args:
            metadata: {"width", "height", "duration_sec", "fps"} 중 일부
        """
        if not metadata:
            return 1.0
        t = self.thresholds
        checks = []
        if "width" in metadata and "height" in metadata:
            checks.append(metadata["width"] >= t.min_resolution[0] and metadata["height"] >= t.min_resolution[1])
        if "duration_sec" in metadata:
            checks.append(t.min_duration_sec <= metadata["duration_sec"] <= t.max_duration_sec)
        if "fps" in metadata:
            checks.append(metadata["fps"] >= t.required_fps)
        return sum(checks) / len(checks) if checks else 1.0

    def score(
        self,
        typography: TypographyQCResult,
        consistency: ConsistencyQCResult,
        safety: SafetyQCResult,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VideoScoreResult:
        weights = self.thresholds.weights
        components = {
            "typography": typography.score,
            "consistency": consistency.score,
            "safety": safety.score,
            "technical": self.technical_score(metadata),
        }
        overall = sum(components[k] * weights.get(k, 0.0) for k in components)
        passed_threshold = overall >= self.thresholds.min_score
        gates_pass = all(r.status == QCStatus.PASS for r in (typography, consistency, safety))

        result = VideoScoreResult(
            status=QCStatus.PASS if passed_threshold and gates_pass else QCStatus.FAIL,
            overall_score=round(overall, 4),
            component_scores=components,
            passed_threshold=passed_threshold,
        )
        logger.info(f"[QC] Scoring: {result.status.value} (overall: {overall:.2f})")
        return result

    def should_retry(self, report: QCReport, retry_count: int) -> bool:
        """스크립트 재생성 여부. retry_count 가 한도에 도달하면 항상 False."""
        if retry_count >= self.thresholds.max_attempts_per_scene:
            return False
        retry_on = self.thresholds.retry_on_scores
        return (
            report.typography.score < retry_on.get("typography", 0.8)
            or report.consistency.score < retry_on.get("consistency", 0.75)
            or report.safety.score < retry_on.get("safety", 1.0)
        )

    def retry_reason(self, report: QCReport) -> str:
        """실패한 게이트별 사유를 ' | ' 로 연결"""
        reasons = []
        if report.safety.status == QCStatus.FAIL:
            found = ", ".join(report.safety.forbidden_words_found) or "tone"
            reasons.append(f"Safety ({report.safety.score:.2f}): {found}")
        if report.typography.status == QCStatus.FAIL:
            reasons.append(f"Typography ({report.typography.score:.2f}): {'; '.join(report.typography.violations)}")
        if report.consistency.status == QCStatus.FAIL:
            reasons.append(f"Consistency ({report.consistency.score:.2f}): {'; '.join(report.consistency.violations)}")
        return " | ".join(reasons)
