"""
Typography Validator (QC 2단계)

씬마다 5개 항목을 StyleBible 타이포그래피 계획 + 규칙 테이블 기준으로 검사합니다.
- subtitle_line_length: 줄당 글자 수 ≤ 로케일 한도 (ko 40 / en 50)
- subtitle_max_lines: 줄 수 ≤ 2
- subtitle_safe_area: 하단 영역 + safe area ≥ 90%
- subtitle_font_size: ≥ 22
- subtitle_contrast: 글자색/외곽선 WCAG 대비 ≥ 4.5:1

점수 = 통과 항목 비율, 하나라도 실패하면 FAIL.
"""

from typing import List, Optional, Sequence, Tuple

from schemas import (
    Language,
    QCStatus,
    SceneScript,
    TypographyCheck,
    TypographyPlan,
    TypographyQCResult,
    TypographyRules,
)
from utils.logger import get_logger

logger = get_logger("typography")


def subtitle_lines(text: str) -> List[str]:
    """명시적 줄바꿈 기준으로 자막 줄 분리"""
    lines = [line.strip() for line in (text or "").split("\n")]
    return [line for line in lines if line] or [""]


def _relative_luminance(hex_color: str) -> float:
    value = hex_color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    channels = []
    for i in (0, 2, 4):
        c = int(value[i:i + 2], 16) / 255
        channels.append(c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4)
    r, g, b = channels
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(foreground: str, background: str) -> float:
    """WCAG 2.x 대비율 (1.0 ~ 21.0)"""
    l1, l2 = sorted((_relative_luminance(foreground), _relative_luminance(background)), reverse=True)
    return (l1 + 0.05) / (l2 + 0.05)


def _check(scene_number: int, name: str, passed: bool, violation: str) -> TypographyCheck:
    return TypographyCheck(
        scene_number=scene_number,
        check=name,
        passed=passed,
        message="" if passed else violation,
    )


class TypographyValidator:
    """
    자막 타이포그래피 검증기

    Args:
        rules: TypographyRules (load_qc_rules().typography)
    """

    def __init__(self, rules: Optional[TypographyRules] = None):
        self.rules = rules or TypographyRules()

    def limits(self, plan: TypographyPlan, language: Language) -> Tuple[int, int]:
        """(줄당 글자 수 한도, 최대 줄 수). 계획과 규칙 중 더 엄격한 값."""
        lang = Language(language).value
        chars = min(plan.max_chars_per_line.get(lang, self.rules.chars_limit(lang)), self.rules.chars_limit(lang))
        return chars, min(plan.max_lines, self.rules.max_lines)

    def validate(
        self,
        scripts: Sequence[SceneScript],
        plan: TypographyPlan,
        language: Language = Language.KO,
    ) -> TypographyQCResult:
        chars_limit, max_lines = self.limits(plan, language)
        contrast = contrast_ratio(plan.text_color, plan.outline_color)
        min_contrast = max(self.rules.min_contrast_ratio, plan.min_contrast_ratio)
        details: List[TypographyCheck] = []

        for script in sorted(scripts, key=lambda s: s.scene_number):
            n = script.scene_number
            lines = subtitle_lines(script.subtitle_text)
            longest = max(len(line) for line in lines)

            details.append(_check(
                n,
                "subtitle_line_length",
                longest <= chars_limit,
                f"Scene {n}: Subtitle line too long ({longest} chars, limit {chars_limit} chars/line)",
            ))
            details.append(_check(
                n,
                "subtitle_max_lines",
                len(lines) <= max_lines,
                f"Scene {n}: Too many subtitle lines ({len(lines)}, limit {max_lines})",
            ))
            details.append(_check(
                n,
                "subtitle_safe_area",
                (
                    plan.subtitle_zone == self.rules.required_zone
                    and plan.safe_area_percent >= self.rules.min_safe_area_percent
                ),
                (
                    f"Scene {n}: Subtitle region {plan.subtitle_zone} {plan.safe_area_percent:g}% "
                    f"outside safe area ({self.rules.required_zone} {self.rules.min_safe_area_percent:g}%)"
                ),
            ))
            details.append(_check(
                n,
                "subtitle_font_size",
                plan.font_size >= self.rules.min_font_size,
                f"Scene {n}: Font size too small ({plan.font_size}px, min {self.rules.min_font_size}px)",
            ))
            details.append(_check(
                n,
                "subtitle_contrast",
                contrast >= min_contrast,
                f"Scene {n}: Contrast ratio too low ({contrast:.2f}:1, min {min_contrast}:1)",
            ))

        passed = [d for d in details if d.passed]
        score = len(passed) / len(details) if details else 0.0
        all_pass = bool(details) and len(passed) == len(details)

        def _ok(*names: str) -> bool:
            return bool(details) and all(d.passed for d in details if d.check in names)

        result = TypographyQCResult(
            status=QCStatus.PASS if all_pass else QCStatus.FAIL,
            score=score,
            checks={
                "subtitleLength": _ok("subtitle_line_length", "subtitle_max_lines"),
                "subtitlePosition": _ok("subtitle_safe_area"),
                "fontSizeCompliance": _ok("subtitle_font_size"),
                "contrastRatio": _ok("subtitle_contrast"),
            },
            violations=[d.message for d in details if not d.passed],
            details=details,
        )
        logger.info(f"[QC] Typography: {result.status.value} (score: {score:.2f})")
        return result

    def scenes_with_violations(self, result: TypographyQCResult) -> List[int]:
        return sorted({d.scene_number for d in result.details if not d.passed})


def auto_fix_typography(
    scripts: Sequence[SceneScript],
    rules: Optional[TypographyRules] = None,
    language: Language = Language.KO,
) -> List[SceneScript]:
    """
    한도를 넘는 자막 줄을 (한도 - 3)자 + '...' 로 자르고, 초과 줄은 버립니다.

    나레이션만 수정하며 새 SceneScript 목록을 반환합니다.
    """
    rules = rules or TypographyRules()
    limit = rules.chars_limit(Language(language).value)
    fixed = []
    for script in scripts:
        lines = subtitle_lines(script.subtitle_text)[:rules.max_lines]
        lines = [line if len(line) <= limit else line[:limit - 3].rstrip() + "..." for line in lines]
        text = "\n".join(lines)
        if text != script.narration:
            logger.info(f"[QC] Auto-fixed subtitle for scene {script.scene_number}")
            script = script.model_copy(update={"narration": text})
        fixed.append(script)
    return fixed
