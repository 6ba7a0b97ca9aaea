"""
FFmpeg Utilities for Trailer Assembly

- 씬 클립 연결 (concat demuxer, -c copy → 재인코딩 fallback)
- 자막 burn-in (subtitles 필터 + force_style)
- 합성 fallback: 자막 합성 → 연결만 → 첫 씬만
"""

import json
import os
import re
import shutil
import subprocess
from typing import Any, Dict, List, Optional

from schemas import AssemblyMode, AssemblyOutcome, TypographyPlan
from utils.errors import AssemblyError
from utils.logger import get_logger

logger = get_logger("ffmpeg")

SUBTITLE_FORCE_STYLE = {
    "FontSize": 18,
    "Bold": 1,
    "PrimaryColour": "&HFFFFFF",
    "OutlineColour": "&H000000",
    "BackColour": "&H80000000",
    "Outline": 2,
    "Shadow": 1,
    "BorderStyle": 4,
    "MarginV": 30,
}

# TypographyPlan.subtitle_zone → ASS 정렬 (numpad 배치, 가운데 정렬)
_ASS_ALIGNMENT = {"bottom": 2, "middle": 5, "top": 8}

_VOICE_TAG_RE = re.compile(r"</?v[^>]*>")
_VTT_TIME_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d{3})")


def _sanitize_ffmpeg_style_value(value) -> str:
    """force_style 개별 값에서 필터 구분자 제거"""
    return re.sub(r"[;'\"\\`\n\r,]", "", str(value))


def build_force_style(style: Optional[Dict[str, Any]] = None) -> str:
    merged = {**SUBTITLE_FORCE_STYLE, **(style or {})}
    return ",".join(f"{k}={_sanitize_ffmpeg_style_value(v)}" for k, v in merged.items())


def _ass_colour(hex_color: str) -> str:
    """#RRGGBB → ASS &HBBGGRR"""
    value = hex_color.lstrip("#")
    if not re.fullmatch(r"[0-9a-fA-F]{6}", value):
        raise ValueError(f"Invalid colour: {hex_color}")
    return f"&H{value[4:6]}{value[2:4]}{value[0:2]}".upper()


def force_style_from_plan(plan: TypographyPlan, language="ko") -> Dict[str, Any]:
    """
    Typography QC 가 검증한 계획값을 burn-in 스타일로 변환.

    글꼴 크기, 하단 여백, 색상, 자막 영역이 계획과 같게 렌더링됩니다.
    """
    language = getattr(language, "value", language)
    return {
        "FontName": plan.font_family.get(language) or plan.font_family.get("ko", ""),
        "FontSize": plan.font_size,
        "PrimaryColour": _ass_colour(plan.text_color),
        "OutlineColour": _ass_colour(plan.outline_color),
        "MarginV": plan.safe_margin_px,
        "Alignment": _ASS_ALIGNMENT.get(plan.subtitle_zone, 2),
    }


def escape_filter_path(path: str) -> str:
    """subtitles 필터용 경로 이스케이프 (백슬래시 → 슬래시, 콜론/따옴표 이스케이프)"""
    return path.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


def vtt_to_srt(vtt_text: str) -> str:
    """WebVTT → SRT (헤더/보이스 태그 제거, 타임스탬프 소수점 → 쉼표)"""
    lines = vtt_text.replace("\r\n", "\n").split("\n")
    if lines and lines[0].startswith("WEBVTT"):
        lines = lines[1:]
    out = []
    for line in lines:
        if "-->" in line:
            line = _VTT_TIME_RE.sub(r"\1,\2", line)
        out.append(_VOICE_TAG_RE.sub("", line))
    return "\n".join(out).strip("\n") + "\n"


class VideoAssembler:
    """
    FFmpeg 기반 트레일러 합성기 (동기, subprocess)

    비동기 코드에서는 asyncio.to_thread 로 호출합니다.
    """

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe", resolution: str = "1280x720", fps: int = 24):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.fps = fps
        self.width, self.height = map(int, resolution.split("x"))

    def _run(self, cmd: List[str], timeout: int) -> subprocess.CompletedProcess:
        return subprocess.run(cmd, capture_output=True, text=True, encoding="utf-8", errors="replace", timeout=timeout)

    def concatenate_videos(self, video_paths: List[str], output_path: str) -> bool:
        """
        여러 씬 클립을 순서대로 연결.

        Returns:
            성공 여부
        """
        if not video_paths:
            raise AssemblyError("No video paths provided")

        output_dir = os.path.dirname(os.path.abspath(output_path))
        concat_file = os.path.join(output_dir, "concat_list.txt")
        with open(concat_file, "w", encoding="utf-8") as f:
            for video_path in video_paths:
                f.write(f"file '{os.path.abspath(video_path)}'\n")

        try:
            logger.info(f"[FFmpeg] Concatenating {len(video_paths)} clips...")
            cmd = [
                self.ffmpeg_bin, "-y",
                "-f", "concat", "-safe", "0",
                "-i", concat_file,
                "-c", "copy",
                output_path,
            ]
            result = self._run(cmd, timeout=max(60, len(video_paths) * 10))
            if result.returncode == 0:
                return True

            logger.warning(f"[FFmpeg] concat -c copy failed, retrying with re-encode: {result.stderr[-300:]}")
            cmd_reencode = [
                self.ffmpeg_bin, "-y",
                "-f", "concat", "-safe", "0",
                "-i", concat_file,
                "-c:v", "libx264", "-preset", "ultrafast", "-crf", "23",
                "-pix_fmt", "yuv420p",
                "-vf", f"scale={self.width}:{self.height}:force_original_aspect_ratio=decrease,"
                       f"pad={self.width}:{self.height}:(ow-iw)/2:(oh-ih)/2",
                "-r", str(self.fps),
                "-c:a", "aac",
                output_path,
            ]
            result = self._run(cmd_reencode, timeout=max(180, len(video_paths) * 45))
            if result.returncode != 0:
                logger.error(f"[FFmpeg] Re-encode concat also failed: {result.stderr[-300:]}")
                return False
            return True
        except subprocess.TimeoutExpired:
            logger.error("[FFmpeg] Concatenation timed out")
            return False
        finally:
            if os.path.exists(concat_file):
                os.remove(concat_file)

    def burn_subtitles(self, video_in: str, subtitle_path: str, out_path: str, style: Optional[Dict[str, Any]] = None) -> bool:
        """
        자막 burn-in. WebVTT 는 보이스 태그를 제거한 SRT 로 변환해 사용합니다.

        Returns:
            성공 여부
        """
        subtitle_abs = os.path.abspath(subtitle_path)
        if subtitle_abs.endswith(".vtt"):
            with open(subtitle_abs, "r", encoding="utf-8") as f:
                srt = vtt_to_srt(f.read())
            subtitle_abs = subtitle_abs[:-4] + ".srt"
            with open(subtitle_abs, "w", encoding="utf-8") as f:
                f.write(srt)

        vf_filter = f"subtitles='{escape_filter_path(subtitle_abs)}':force_style='{build_force_style(style)}'"
        cmd = [
            self.ffmpeg_bin, "-y",
            "-i", video_in,
            "-vf", vf_filter,
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-pix_fmt", "yuv420p",
            "-c:a", "copy",
            out_path,
        ]
        logger.info("[FFmpeg] Burning subtitles...")
        try:
            result = self._run(cmd, timeout=300)
        except subprocess.TimeoutExpired:
            logger.error("[FFmpeg] Subtitle burn-in timed out")
            return False
        if result.returncode != 0:
            logger.error(f"[FFmpeg] Subtitle burn-in failed: {result.stderr[-300:]}")
            return False
        return True

    def assemble(
        self,
        scene_paths: List[str],
        subtitle_path: Optional[str],
        output_path: str,
        style: Optional[Dict[str, Any]] = None,
    ) -> AssemblyOutcome:
        """
        씬 클립(씬 번호 순) + 자막 → 최종 영상.

        style 은 force_style 덮어쓰기 값 (force_style_from_plan 결과).

        fallback 순서: 자막 합성 → 연결만 → 첫 씬만

        Raises:
            AssemblyError: 씬이 하나도 없을 때
        """
        if not scene_paths:
            raise AssemblyError("No scene videos to assemble")

        errors: List[str] = []
        output_dir = os.path.dirname(os.path.abspath(output_path))
        os.makedirs(output_dir, exist_ok=True)
        concat_path = os.path.join(output_dir, "merged_concat.mp4")

        if len(scene_paths) == 1:
            shutil.copyfile(scene_paths[0], concat_path)
            concatenated = True
        else:
            concatenated = self.concatenate_videos(scene_paths, concat_path)
            if not concatenated:
                errors.append("concatenation failed")

        if concatenated:
            if subtitle_path and os.path.exists(subtitle_path):
                if self.burn_subtitles(concat_path, subtitle_path, output_path, style):
                    return AssemblyOutcome(mode=AssemblyMode.SUBTITLED, output_path=output_path, errors=errors)
                errors.append("subtitle burn-in failed")
            else:
                errors.append("subtitle file missing")
            shutil.copyfile(concat_path, output_path)
            logger.warning("[FFmpeg] Falling back to concatenated video without subtitles")
            return AssemblyOutcome(mode=AssemblyMode.CONCAT_ONLY, output_path=output_path, errors=errors)

        logger.warning("[FFmpeg] Falling back to first scene only")
        shutil.copyfile(scene_paths[0], output_path)
        return AssemblyOutcome(mode=AssemblyMode.FIRST_SCENE_ONLY, output_path=output_path, errors=errors)

    def get_video_duration(self, video_path: str) -> float:
        """ffprobe로 영상 길이 확인."""
        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            video_path,
        ]
        result = self._run(cmd, timeout=30)
        if result.returncode != 0:
            raise AssemblyError(f"Failed to get video duration: {result.stderr}")
        return float(result.stdout.strip())

    def probe_metadata(self, video_path: str) -> Dict[str, Any]:
        """
        해상도 / fps / 길이 (VideoScorer 기술 점수용).

        Raises:
            AssemblyError: ffprobe 실패
        """
        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height,r_frame_rate:format=duration",
            "-of", "json",
            video_path,
        ]
        result = self._run(cmd, timeout=30)
        if result.returncode != 0:
            raise AssemblyError(f"ffprobe failed: {result.stderr[-300:]}")
        data = json.loads(result.stdout or "{}")
        stream = (data.get("streams") or [{}])[0]
        num, _, den = str(stream.get("r_frame_rate", "0/1")).partition("/")
        fps = float(num) / float(den or 1) if float(den or 1) else 0.0
        return {
            "width": int(stream.get("width", 0)),
            "height": int(stream.get("height", 0)),
            "fps": fps,
            "duration_sec": float((data.get("format") or {}).get("duration", 0.0)),
        }
