"""
Safety Gate (QC 1단계): 어린이 콘텐츠 무관용 안전 검사

- 나레이션, 대사, 장면 묘사, 모든 생성 프롬프트에서 금칙어/금지 테마를 부분 문자열로 검색
- 긍정/부정 키워드 수로 톤 점수 산출
- 점수는 1.0 (위반 0건 + 톤 ≥ 기준) 또는 0.0 뿐입니다

부분 문자열 매칭은 의도적으로 단순한 방식이라 오탐/미탐이 있을 수 있습니다.
"""

from typing import Dict, List, Optional, Sequence

from schemas import QCStatus, SafetyQCResult, SafetyRules, SceneScript
from utils.logger import get_logger

logger = get_logger("safety_gate")


def _scene_text(script: SceneScript) -> str:
    return " ".join([
        script.narration,
        script.character_dialogue or "",
        script.visual_description,
        script.keyframe_prompt,
        script.video_prompt,
    ]).lower()


class SafetyGate:
    """
    금칙어/테마 + 톤 기반 안전 게이트

    Args:
        rules: SafetyRules (load_qc_rules().safety)
    """

    def __init__(self, rules: Optional[SafetyRules] = None):
        self.rules = rules or SafetyRules()

    def default_constraints(self) -> Dict[str, object]:
        return {
            "forbidden_words": list(self.rules.forbidden_words),
            "forbidden_themes": list(self.rules.forbidden_themes),
            "required_tone": self.rules.required_tone,
            "target_audience": self.rules.target_audience,
        }

    def check(self, scripts: Sequence[SceneScript], constraints: Optional[Dict[str, object]] = None) -> SafetyQCResult:
        """
        스크립트 안전 검사.

        Args:
            scripts: 검사할 씬 스크립트
            constraints: 추가 제약 (forbidden_words / forbidden_themes)

        Returns:
            SafetyQCResult (score 0.0 또는 1.0)
        """
        constraints = constraints or {}
        words = _dedupe([w.lower() for w in [*self.rules.forbidden_words, *constraints.get("forbidden_words", [])]])
        themes = _dedupe([t.lower() for t in [*self.rules.forbidden_themes, *constraints.get("forbidden_themes", [])]])

        violations: List[str] = []
        words_found: List[str] = []
        theme_violations: List[str] = []

        for script in scripts:
            text = _scene_text(script)
            for word in words:
                if word in text:
                    words_found.append(word)
                    violations.append(f"Scene {script.scene_number}: Forbidden word \"{word}\" found")
            for theme in themes:
                if theme in text:
                    theme_violations.append(theme)
                    violations.append(f"Scene {script.scene_number}: Forbidden theme \"{theme}\" detected")

        tone_score = self.calculate_tone_score(scripts)
        if tone_score < self.rules.min_tone_score:
            violations.append(f"Tone score too low: {tone_score:.2f} (min {self.rules.min_tone_score})")

        score = 1.0 if not violations else 0.0
        status = QCStatus.PASS if score == 1.0 else QCStatus.FAIL

        logger.info(f"[QC] Safety: {status.value} (violations: {len(violations)}, tone: {tone_score:.2f})")
        return SafetyQCResult(
            status=status,
            score=score,
            forbidden_words_found=_dedupe(words_found),
            theme_violations=_dedupe(theme_violations),
            tone_score=tone_score,
            violations=violations,
        )

    def calculate_tone_score(self, scripts: Sequence[SceneScript]) -> float:
        """0.5 + 0.1 × 긍정 키워드 수 − 0.2 × 부정 키워드 수, [0, 1]"""
        text = " ".join(
            " ".join([s.narration, s.character_dialogue or "", s.visual_description])
            for s in scripts
        ).lower()
        positive = sum(1 for w in self.rules.positive_words if w.lower() in text)
        negative = sum(1 for w in self.rules.negative_words if w.lower() in text)
        return max(0.0, min(1.0, 0.5 + positive * 0.1 - negative * 0.2))

    def strengthen_constraints(self, constraints: Dict[str, object], retry_count: int) -> Dict[str, object]:
        """재시도용으로 더 강한 제약 반환 (원본은 수정하지 않음)"""
        tone = constraints.get("required_tone", self.rules.required_tone)
        return {
            **constraints,
            "required_tone": f"EXTREMELY {tone}, NO scary or dark elements whatsoever (retry {retry_count})",
            "forbidden_themes": [
                *constraints.get("forbidden_themes", []),
                "anything remotely scary",
                "any dark imagery",
                "any violence or conflict",
            ],
        }

    def is_text_safe_for_children(self, text: str) -> bool:
        lowered = text.lower()
        return not any(w.lower() in lowered for w in (*self.rules.forbidden_words, *self.rules.forbidden_themes))


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))
