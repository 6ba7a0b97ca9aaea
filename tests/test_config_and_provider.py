"""
Configuration loading, provider factory and error log tests.
"""
import asyncio
import json
import sys
import os

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents.generation_provider import GeminiVeoProvider, create_provider
from config import load_pipeline_config, load_qc_rules, load_retry_limits
from schemas import QCRules, Stage
from utils.error_manager import ErrorManager
from utils.errors import GenerationError, QCConfigError, VideoGenerationError
from utils.logger import get_logger


# ==========================================================================
# Config
# ==========================================================================

class TestConfig:

    def test_bundled_rules_match_defaults(self):
        rules = load_qc_rules()
        assert rules.typography.chars_limit("ko") == 40
        assert rules.typography.chars_limit("en") == 50
        assert rules.safety.min_tone_score == 0.7
        assert rules.version == QCRules().version

    def test_rules_override(self, tmp_path):
        path = tmp_path / "qc_rules.yaml"
        path.write_text("qc_rules:\n  typography:\n    max_lines: 1\n", encoding="utf-8")
        rules = load_qc_rules(str(path))
        assert rules.typography.max_lines == 1
        assert rules.consistency.max_color_drift == pytest.approx(0.2)

    def test_invalid_rules_raise(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("qc_rules:\n  typography:\n    max_lines: many\n", encoding="utf-8")
        with pytest.raises(QCConfigError):
            load_qc_rules(str(path))

    def test_missing_rules_file_uses_defaults(self, tmp_path):
        assert load_qc_rules(str(tmp_path / "nope.yaml")) == QCRules()

    def test_pipeline_config_merges_sections(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STORAGE_TYPE", "r2")
        path = tmp_path / "pipeline.yaml"
        path.write_text("qc:\n  max_script_regenerations: 5\n", encoding="utf-8")
        config = load_pipeline_config(str(path))
        assert config["qc"]["max_script_regenerations"] == 5
        assert config["storage"]["type"] == "r2"
        assert config["paths"]["temp_dir"]

    def test_retry_limits(self):
        limits = load_retry_limits()
        assert (limits.script, limits.keyframe, limits.video) == (3, 3, 2)
        assert limits.base_delay_sec[Stage.VIDEO.value] == 3.0


# ==========================================================================
# Provider
# ==========================================================================

class TestProvider:

    def test_unknown_provider(self):
        with pytest.raises(GenerationError) as exc:
            create_provider("midjourney")
        assert exc.value.retryable is False

    def test_gemini_requires_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        with pytest.raises(ValueError):
            create_provider("gemini")

    def test_video_requires_keyframe(self):
        provider = GeminiVeoProvider(api_key="test-key")
        assert provider.name() == "gemini"
        with pytest.raises(VideoGenerationError) as exc:
            asyncio.run(provider.generate_video(b"", "slow pan"))
        assert exc.value.stage == "video"
        assert not exc.value.retryable


# ==========================================================================
# Error log and logger
# ==========================================================================

class TestErrorLog:

    def test_entries_are_bounded(self, monkeypatch):
        monkeypatch.setattr(ErrorManager, "MAX_ENTRIES", 3)
        for i in range(5):
            ErrorManager.log_error("Pipeline", f"failure {i}", details={"scene": i}, job_id="job_1")

        with open(ErrorManager.LOG_FILE, encoding="utf-8") as f:
            entries = json.load(f)
        assert [e["message"] for e in entries] == ["failure 2", "failure 3", "failure 4"]
        assert entries[-1]["job_id"] == "job_1"
        assert entries[-1]["severity"] == "error"

    def test_corrupt_log_starts_over(self):
        with open(ErrorManager.LOG_FILE, "w", encoding="utf-8") as f:
            f.write("{not json")
        ErrorManager.log_error("QC", "Safety check failed", severity="warning")
        with open(ErrorManager.LOG_FILE, encoding="utf-8") as f:
            assert len(json.load(f)) == 1

    def test_logger_namespace(self):
        logger = get_logger("pipeline")
        assert logger.name == "booktrailer.pipeline"
        assert get_logger("pipeline") is logger
        assert len(logger.handlers) == 1


# ==========================================================================
# Config wiring
# ==========================================================================

class TestConfigWiring:

    def test_callback_client_reads_backend_section(self, monkeypatch):
        import utils.callback as callback_module

        config = load_pipeline_config()
        config["backend"] = {"url": "http://backend:4000/", "internal_secret": "from-yaml", "max_retries": 5}
        monkeypatch.setattr(callback_module, "load_pipeline_config", lambda: config)

        client = callback_module.BackendCallbackClient()
        assert client.url == "http://backend:4000/api/internal/video-callback"
        assert client.internal_secret == "from-yaml"
        assert client.max_retries == 5

    def test_worker_reads_worker_section(self, monkeypatch):
        import worker as worker_module

        config = load_pipeline_config()
        config["worker"] = {"concurrency": 4}
        monkeypatch.setattr(worker_module, "load_pipeline_config", lambda: config)
        assert worker_module.WorkerPool(orchestrator=None).concurrency == 4
        assert worker_module.WorkerPool(orchestrator=None, concurrency=1).concurrency == 1

    def test_provider_name_from_config(self, monkeypatch):
        monkeypatch.setenv("GENERATION_PROVIDER", "midjourney")
        with pytest.raises(GenerationError) as exc:
            create_provider()
        assert "midjourney" in str(exc.value)
