"""
Consistency Validator (QC 3단계): 스타일 바이블 대비 씬 일관성 검증

4축 평가:
- anchor_match: 스타일 키워드(비주얼/무드/카메라/팔레트)가 씬 텍스트에 포함된 비율 (≥ 0.75)
- scene_consistency: 연속 씬 간 스타일 어휘 집합의 Jaccard 평균 (≥ 0.80)
- color_drift: 색상 언급 중 팔레트 밖 색의 비율 (≤ 0.20)
- style_signature_match: 모든 씬에 비주얼 스타일 토큰이 최소 1개

점수 = (anchor_match + scene_consistency + (1 - color_drift)) / 3
"""

import hashlib
import json
from typing import List, Optional, Sequence, Set

from schemas import (
    ConsistencyQCResult,
    ConsistencyRules,
    QCStatus,
    SceneScript,
    StyleBible,
)
from utils.logger import get_logger

logger = get_logger("consistency")


def _scene_text(script: SceneScript) -> str:
    return " ".join([script.visual_description, script.keyframe_prompt, script.video_prompt]).lower()


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ConsistencyValidator:
    """
    텍스트 기반 스타일 일관성 검증기

    Args:
        rules: ConsistencyRules (load_qc_rules().consistency)
    """

    def __init__(self, rules: Optional[ConsistencyRules] = None):
        self.rules = rules or ConsistencyRules()

    def validate(self, scripts: Sequence[SceneScript], style_bible: StyleBible) -> ConsistencyQCResult:
        scripts = sorted(scripts, key=lambda s: s.scene_number)
        violations: List[str] = []

        anchor_match = self.anchor_match(scripts, style_bible)
        if anchor_match < self.rules.min_anchor_match:
            violations.append(
                f"Anchor match score too low: {anchor_match:.2f} (min {self.rules.min_anchor_match})"
            )

        scene_consistency = self.scene_consistency(scripts)
        if scene_consistency < self.rules.min_scene_consistency:
            violations.append(
                f"Scene-to-scene consistency too low: {scene_consistency:.2f} (min {self.rules.min_scene_consistency})"
            )

        color_drift = self.color_drift(scripts, style_bible)
        if color_drift > self.rules.max_color_drift:
            violations.append(
                f"Color palette drift too high: {color_drift:.2f} (max {self.rules.max_color_drift})"
            )

        signature_match = self.style_signature_match(scripts, style_bible)
        if not signature_match:
            violations.append("Style signature does not match across all scenes")

        score = _clamp((anchor_match + scene_consistency + (1 - color_drift)) / 3)
        result = ConsistencyQCResult(
            status=QCStatus.PASS if not violations else QCStatus.FAIL,
            score=score,
            anchor_match=anchor_match,
            scene_consistency=scene_consistency,
            color_drift=color_drift,
            style_signature_match=signature_match,
            violations=violations,
        )
        logger.info(
            f"[QC] Consistency: {result.status.value} (score: {score:.2f}, anchor: {anchor_match:.2f}, "
            f"scenes: {scene_consistency:.2f}, drift: {color_drift:.2f})"
        )
        return result

    def anchor_match(self, scripts: Sequence[SceneScript], style_bible: StyleBible) -> float:
        """씬별 키워드 포함 비율의 평균"""
        keywords = [
            style_bible.visual_style,
            style_bible.mood,
            style_bible.camera_language,
            *style_bible.color_palette,
        ]
        keywords = [k.lower() for k in keywords if k]
        if not scripts or not keywords:
            return 0.0
        matches = sum(1 for s in scripts for k in keywords if k in _scene_text(s))
        return _clamp(matches / (len(scripts) * len(keywords)))

    def style_descriptors(self, script: SceneScript) -> Set[str]:
        text = _scene_text(script)
        return {k for k in self.rules.style_keywords if k in text}

    def scene_consistency(self, scripts: Sequence[SceneScript]) -> float:
        """연속 씬 쌍의 Jaccard 유사도 평균 (씬 1개 이하면 1.0)"""
        if len(scripts) < 2:
            return 1.0
        descriptors = [self.style_descriptors(s) for s in scripts]
        total = 0.0
        for a, b in zip(descriptors, descriptors[1:]):
            union = a | b
            total += len(a & b) / len(union) if union else 0.0
        return _clamp(total / (len(descriptors) - 1))

    def color_drift(self, scripts: Sequence[SceneScript], style_bible: StyleBible) -> float:
        """팔레트 밖 색상 언급 비율 (언급 없으면 0.0)"""
        palette = [c.lower() for c in style_bible.color_palette]
        mentions = 0
        anchored = 0
        for script in scripts:
            text = _scene_text(script)
            for color in self.rules.color_words:
                if color in text:
                    mentions += 1
                    if any(color in p for p in palette):
                        anchored += 1
        if mentions == 0:
            return 0.0
        return _clamp(1 - anchored / mentions)

    def style_signature_match(self, scripts: Sequence[SceneScript], style_bible: StyleBible) -> bool:
        indicators = [t for t in style_bible.visual_style.lower().split() if t]
        if not scripts or not indicators:
            return False
        return all(any(t in _scene_text(s) for t in indicators) for s in scripts)


def compute_consistency_signature(scripts: Sequence[SceneScript]) -> str:
    """씬 묘사/키프레임 프롬프트의 sha256 (캐시/비교용)"""
    data = [
        {"visual": s.visual_description, "keyframe": s.keyframe_prompt}
        for s in sorted(scripts, key=lambda s: s.scene_number)
    ]
    return hashlib.sha256(json.dumps(data, ensure_ascii=False).encode("utf-8")).hexdigest()
