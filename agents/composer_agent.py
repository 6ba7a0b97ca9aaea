"""
Composer Agent: 씬 영상 + 자막 → 최종 트레일러 (FFmpeg)
"""

import asyncio
import os
import subprocess
from typing import Any, Dict, Optional

from schemas import AssemblyMode, AssemblyOutcome
from utils.errors import AssemblyError
from utils.ffmpeg_utils import VideoAssembler
from utils.logger import get_logger

logger = get_logger("composer")


class ComposerAgent:
    """
    씬 영상 바이트를 작업 디렉토리에 쓰고 VideoAssembler 로 합성합니다.

    FFmpeg 호출은 블로킹이므로 asyncio.to_thread 로 이벤트 루프 밖에서 실행합니다.
    """

    def __init__(self, assembler: Optional[VideoAssembler] = None):
        self.assembler = assembler or VideoAssembler()

    async def compose(
        self,
        scene_videos: Dict[int, bytes],
        vtt_content: Optional[str],
        work_dir: str,
        output_name: str = "final.mp4",
        style: Optional[Dict[str, Any]] = None,
    ) -> AssemblyOutcome:
        """
        Args:
            scene_videos: {씬 번호: 영상 바이트} (성공한 씬만)
            vtt_content: WebVTT 문자열
            work_dir: 잡 전용 임시 디렉토리
            style: 자막 force_style 값 (force_style_from_plan)

        Returns:
            AssemblyOutcome (subtitled / concat_only / first_scene_only)
        """
        if not scene_videos:
            raise AssemblyError("No scene videos to compose")

        os.makedirs(work_dir, exist_ok=True)
        scene_paths = []
        for scene_number in sorted(scene_videos):
            path = os.path.join(work_dir, f"scene-{scene_number}.mp4")
            with open(path, "wb") as f:
                f.write(scene_videos[scene_number])
            scene_paths.append(path)

        vtt_path = None
        if vtt_content:
            vtt_path = os.path.join(work_dir, "subtitles.vtt")
            with open(vtt_path, "w", encoding="utf-8") as f:
                f.write(vtt_content)

        output_path = os.path.join(work_dir, output_name)
        logger.info(f"[Composer] Assembling {len(scene_paths)} scenes → {output_path}")
        outcome = await asyncio.to_thread(self.assembler.assemble, scene_paths, vtt_path, output_path, style)

        if outcome.mode != AssemblyMode.SUBTITLED:
            logger.warning(f"[Composer] Assembly degraded to {outcome.mode.value}: {', '.join(outcome.errors)}")
        else:
            logger.info("[Composer] Assembly complete with subtitles")
        return outcome

    async def probe(self, video_path: str) -> Optional[dict]:
        """기술 점수용 메타데이터. 실패 시 None."""
        try:
            return await asyncio.to_thread(self.assembler.probe_metadata, video_path)
        except (AssemblyError, OSError, ValueError, subprocess.SubprocessError) as e:
            logger.warning(f"[Composer] Could not probe {video_path}: {e}")
            return None
