"""
BookTrailer Data Models (Pydantic Schemas)
"""

from .models import (
    Language,
    SceneType,
    SceneRole,
    Stage,
    QCStatus,
    JobStatus,
    CallbackStatus,
    AssemblyMode,
    Character,
    PlotBeat,
    BookFacts,
    BookCandidate,
    RankedCandidate,
    GroundingResult,
    TypographyPlan,
    StyleBible,
    ScenePlan,
    SceneScript,
    RetryLimits,
    SceneRetryState,
    HierarchicalRetryState,
    RetryDecision,
    SafetyQCResult,
    TypographyCheck,
    TypographyQCResult,
    ConsistencyQCResult,
    VideoScoreResult,
    QCReport,
    CostBreakdown,
    ApiCallCounts,
    CostReport,
    JobRequest,
    VideoGenerationResult,
    CacheEntry,
    AssemblyOutcome,
    CallbackPayload,
    now_iso,
)
from .qc_rules import (
    SafetyRules,
    TypographyRules,
    ConsistencyRules,
    ScoringThresholds,
    QCRules,
)

__all__ = [
    "Language",
    "SceneType",
    "SceneRole",
    "Stage",
    "QCStatus",
    "JobStatus",
    "CallbackStatus",
    "AssemblyMode",
    "Character",
    "PlotBeat",
    "BookFacts",
    "BookCandidate",
    "RankedCandidate",
    "GroundingResult",
    "TypographyPlan",
    "StyleBible",
    "ScenePlan",
    "SceneScript",
    "RetryLimits",
    "SceneRetryState",
    "HierarchicalRetryState",
    "RetryDecision",
    "SafetyQCResult",
    "TypographyCheck",
    "TypographyQCResult",
    "ConsistencyQCResult",
    "VideoScoreResult",
    "QCReport",
    "CostBreakdown",
    "ApiCallCounts",
    "CostReport",
    "JobRequest",
    "VideoGenerationResult",
    "CacheEntry",
    "AssemblyOutcome",
    "CallbackPayload",
    "now_iso",
    "SafetyRules",
    "TypographyRules",
    "ConsistencyRules",
    "ScoringThresholds",
    "QCRules",
]
