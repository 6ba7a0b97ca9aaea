"""
BookTrailer Worker Pool

고정 크기 슬롯(기본 2)이 asyncio.Queue 에서 JobRequest 를 꺼내 한 번에 하나씩 끝까지 실행합니다.
잡이 끝나면 book_id 가 있는 경우 백엔드에 종단 콜백을 정확히 한 번 보냅니다.
"""

import asyncio
from typing import Dict, List, Optional

from dotenv import load_dotenv

from config import load_pipeline_config
from schemas import CallbackPayload, CallbackStatus, JobRequest, JobStatus, VideoGenerationResult
from utils.callback import BackendCallbackClient
from utils.logger import get_logger

logger = get_logger("worker")


def build_callback_payload(book_id: str, result: VideoGenerationResult) -> CallbackPayload:
    if result.status == JobStatus.COMPLETED:
        return CallbackPayload(
            book_id=book_id,
            status=CallbackStatus.READY,
            video_url=result.video_url,
            subtitle_url=result.subtitle_url,
        )
    return CallbackPayload(
        book_id=book_id,
        status=CallbackStatus.FAILED,
        error_message=result.error or "Unknown error",
    )


class WorkerPool:
    """
    Args:
        orchestrator: execute(JobRequest) 를 가진 TrailerPipeline
        callback: BackendCallbackClient (None 이면 콜백 생략)
        concurrency: 워커 슬롯 수
    """

    def __init__(self, orchestrator, callback: Optional[BackendCallbackClient] = None, concurrency: Optional[int] = None):
        self.orchestrator = orchestrator
        self.callback = callback
        self.concurrency = concurrency or load_pipeline_config()["worker"]["concurrency"]
        self.results: Dict[str, VideoGenerationResult] = {}
        self.callbacks_sent: Dict[str, bool] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._workers: List[asyncio.Task] = []

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i + 1), name=f"trailer-worker-{i + 1}")
            for i in range(self.concurrency)
        ]
        logger.info(f"[Worker] Started {self.concurrency} worker(s)")

    async def submit(self, request: JobRequest) -> None:
        self.start()
        await self._queue.put(request)
        logger.info(f"[Worker] Queued \"{request.title}\" (pending: {self._queue.qsize()})")

    async def join(self) -> None:
        await self._queue.join()

    async def shutdown(self) -> None:
        """대기 중인 잡을 모두 처리한 뒤 워커 종료"""
        await self.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("[Worker] Shut down")

    async def run_all(self, requests: List[JobRequest]) -> List[VideoGenerationResult]:
        """배치 실행 후 제출 순서대로 결과 반환"""
        done: List[VideoGenerationResult] = []
        tracked = []
        for request in requests:
            tracked.append(request)
            await self.submit(request)
        await self.shutdown()
        for request in tracked:
            done.append(self.results[self._key(request)])
        return done

    @staticmethod
    def _key(request: JobRequest) -> str:
        return request.book_id or f"{request.title}::{request.author or ''}"

    async def _worker(self, slot: int) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self._process(slot, request)
            finally:
                self._queue.task_done()

    async def _process(self, slot: int, request: JobRequest) -> None:
        logger.info(f"[Worker {slot}] Processing \"{request.title}\"")
        try:
            result = await self.orchestrator.execute(request)
        except Exception as e:
            # execute 는 종단 결과를 반환하지만, 콜백은 어떤 경우에도 보내야 함
            logger.exception(f"[Worker {slot}] Orchestrator raised for \"{request.title}\"")
            result = VideoGenerationResult(job_id="unknown", status=JobStatus.FAILED, error=str(e))

        self.results[result.job_id] = result
        self.results[self._key(request)] = result
        logger.info(f"[Worker {slot}] Job {result.job_id} → {result.status.value}")

        if request.book_id and self.callback is not None:
            payload = build_callback_payload(request.book_id, result)
            self.callbacks_sent[request.book_id] = await self.callback.notify(payload)


async def serve(requests: List[JobRequest], concurrency: Optional[int] = None) -> List[VideoGenerationResult]:
    """환경변수 기반 기본 구성으로 배치 실행"""
    from agents.generation_provider import create_provider
    from agents.grounding_agent import GoogleBooksCatalog
    from pipeline import TrailerPipeline

    pipeline = TrailerPipeline(provider=create_provider(), catalog=GoogleBooksCatalog())
    pool = WorkerPool(pipeline, BackendCallbackClient(), concurrency)
    return await pool.run_all(requests)


if __name__ == "__main__":
    import json
    import sys

    load_dotenv()
    if len(sys.argv) < 2:
        print("Usage: python worker.py <jobs.json>")
        sys.exit(1)
    with open(sys.argv[1], "r", encoding="utf-8") as f:
        jobs = [JobRequest(**item) for item in json.load(f)]
    for r in asyncio.run(serve(jobs)):
        print(f"{r.job_id}: {r.status.value} {r.video_url or r.error or ''}")
