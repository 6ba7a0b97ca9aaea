"""
QC Runner: Safety → Typography → Consistency → Scoring 순차 실행

Safety 실패 시 나머지 게이트는 평가하지 않고 'Not evaluated' 결과로 채웁니다.
"""

from typing import Any, Dict, Optional, Sequence

from agents.consistency_validator import ConsistencyValidator
from agents.safety_gate import SafetyGate
from agents.typography_validator import TypographyValidator
from agents.video_scorer import VideoScorer
from schemas import (
    ConsistencyQCResult,
    Language,
    QCReport,
    QCRules,
    QCStatus,
    SceneScript,
    StyleBible,
    TypographyQCResult,
    VideoScoreResult,
)
from utils.logger import get_logger

logger = get_logger("qc_runner")

NOT_EVALUATED = "Not evaluated due to safety failure"


class QCRunner:
    """
    4단계 QC 파이프라인

    Args:
        rules: QCRules (프로세스 시작 시 load_qc_rules() 로 한 번 생성)
    """

    def __init__(self, rules: Optional[QCRules] = None):
        self.rules = rules or QCRules()
        self.safety_gate = SafetyGate(self.rules.safety)
        self.typography_validator = TypographyValidator(self.rules.typography)
        self.consistency_validator = ConsistencyValidator(self.rules.consistency)
        self.scorer = VideoScorer(self.rules.scoring)

    def run(
        self,
        job_id: str,
        scripts: Sequence[SceneScript],
        style_bible: StyleBible,
        language: Language = Language.KO,
        safety_constraints: Optional[Dict[str, object]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> QCReport:
        logger.info(f"[QC] Starting QC pipeline for job {job_id} (rules v{self.rules.version})")

        safety = self.safety_gate.check(scripts, safety_constraints)
        if safety.status == QCStatus.FAIL:
            logger.warning(f"[QC] Safety gate FAILED, skipping remaining gates: {safety.violations}")
            return QCReport(
                job_id=job_id,
                overall=QCStatus.FAIL,
                overall_score=0.0,
                safety=safety,
                typography=TypographyQCResult(
                    status=QCStatus.FAIL, score=0.0, violations=[NOT_EVALUATED], evaluated=False,
                ),
                consistency=ConsistencyQCResult(
                    status=QCStatus.FAIL, score=0.0, color_drift=1.0, violations=[NOT_EVALUATED], evaluated=False,
                ),
                scoring=VideoScoreResult(
                    status=QCStatus.FAIL,
                    overall_score=0.0,
                    component_scores={"typography": 0.0, "consistency": 0.0, "safety": 0.0, "technical": 0.0},
                ),
            )

        typography = self.typography_validator.validate(scripts, style_bible.typography, language)
        consistency = self.consistency_validator.validate(scripts, style_bible)
        scoring = self.scorer.score(typography, consistency, safety, metadata)

        report = QCReport(
            job_id=job_id,
            overall=scoring.status,
            overall_score=scoring.overall_score,
            safety=safety,
            typography=typography,
            consistency=consistency,
            scoring=scoring,
        )
        logger.info(f"[QC] QC pipeline complete: {report.overall.value} ({report.overall_score:.2f})")
        return report

    def should_retry(self, report: QCReport, retry_count: int) -> bool:
        return self.scorer.should_retry(report, retry_count)

    def retry_reason(self, report: QCReport) -> str:
        return self.scorer.retry_reason(report)
