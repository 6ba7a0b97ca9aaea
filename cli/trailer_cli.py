"""
BookTrailer CLI - 책 제목으로 북트레일러 생성

사용법:
    python cli/trailer_cli.py generate --title "어린왕자"
    python cli/trailer_cli.py batch jobs.json --concurrency 2
    python cli/trailer_cli.py ground --title "The Little Prince" --author "Saint-Exupéry"
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from agents.cost_reporter import CostReporter
from agents.generation_provider import create_provider
from agents.grounding_agent import BookGrounder, GoogleBooksCatalog
from pipeline import TrailerPipeline
from schemas import JobRequest, JobStatus
from utils.callback import BackendCallbackClient
from worker import WorkerPool


def print_banner():
    banner = """
=====================================================================
   BOOKTRAILER
   AI-Powered Picture Book Trailer Generator
   3 scenes x 8s | Library kiosk edition
=====================================================================
"""
    print(banner)


def load_env():
    load_dotenv()
    print("[OK] Environment variables loaded")


def print_result(result):
    print("\n" + "=" * 60)
    if result.status == JobStatus.COMPLETED:
        print("ALL DONE! Your trailer is ready." + (" (cache hit)" if result.cache_hit else ""))
    else:
        print("FAILED")
    print("=" * 60)
    print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
    if result.cost_report:
        print()
        print(CostReporter.format_report(result.cost_report))


def build_pipeline(args) -> TrailerPipeline:
    return TrailerPipeline(
        provider=create_provider(args.provider),
        catalog=GoogleBooksCatalog(),
        artifacts_dir=args.artifacts_dir,
    )


def cmd_generate(args) -> int:
    if not os.getenv("GOOGLE_API_KEY"):
        print("\n[ERROR] GOOGLE_API_KEY not found in environment.")
        print("        Set your API key in .env file or environment variables.\n")
        return 1

    request = JobRequest(title=args.title, author=args.author, book_id=args.book_id, language=args.language)
    result = asyncio.run(build_pipeline(args).execute(request))
    print_result(result)
    return 0 if result.status == JobStatus.COMPLETED else 1


def cmd_batch(args) -> int:
    with open(args.jobs_file, "r", encoding="utf-8") as f:
        requests = [JobRequest(**item) for item in json.load(f)]

    async def run():
        pool = WorkerPool(build_pipeline(args), BackendCallbackClient(), args.concurrency)
        print(f"[INFO] {len(requests)} job(s), concurrency {pool.concurrency}")
        return await pool.run_all(requests)

    results = asyncio.run(run())
    failed = 0
    for request, result in zip(requests, results):
        mark = "OK  " if result.status == JobStatus.COMPLETED else "FAIL"
        failed += result.status != JobStatus.COMPLETED
        print(f"  [{mark}] {request.title}: {result.video_url or result.error}")
    return 1 if failed else 0


def cmd_ground(args) -> int:
    grounder = BookGrounder(catalog=GoogleBooksCatalog())
    result = asyncio.run(grounder.ground(args.title, args.author))
    print(f"[INFO] Source: {result.source}")
    print(json.dumps(result.book_facts.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="booktrailer", description="BookTrailer CLI")
    parser.add_argument("--provider", default=None, help="generation provider (default: GENERATION_PROVIDER or gemini)")
    parser.add_argument("--artifacts-dir", default=None, help="save intermediate JSON artifacts here")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="generate one trailer")
    gen.add_argument("--title", required=True)
    gen.add_argument("--author", default=None)
    gen.add_argument("--book-id", default=None)
    gen.add_argument("--language", default="ko", choices=["ko", "en"])
    gen.set_defaults(func=cmd_generate)

    batch = sub.add_parser("batch", help="run a JSON list of jobs through the worker pool")
    batch.add_argument("jobs_file")
    batch.add_argument("--concurrency", type=int, default=None, help="worker slots (default: config worker.concurrency)")
    batch.set_defaults(func=cmd_batch)

    ground = sub.add_parser("ground", help="resolve book facts only")
    ground.add_argument("--title", required=True)
    ground.add_argument("--author", default=None)
    ground.set_defaults(func=cmd_ground)

    return parser


def main(argv=None) -> int:
    print_banner()
    load_env()
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n\n[INTERRUPTED] Generation interrupted by user.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
