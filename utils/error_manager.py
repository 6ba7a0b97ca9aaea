import json
import os
import datetime
from typing import Dict, Any, List

from utils.logger import get_logger

logger = get_logger("error_manager")


class ErrorManager:
    """
    Centralized manager for logging and retrieving pipeline errors.

    Entries are kept in a JSON array file, newest last, capped at MAX_ENTRIES.
    """

    LOG_FILE = os.path.join(os.getenv("OUTPUT_DIR", "outputs"), "pipeline_errors.log")
    MAX_ENTRIES = 100

    @classmethod
    def log_error(
        cls,
        service: str,
        error_message: str,
        details: Any = None,
        severity: str = "error",
        job_id: str = None,
    ):
        """
        Log an error to the log file.

        Args:
            service: Component name (e.g., "Pipeline", "VeoProvider")
            error_message: Brief error description
            details: Additional context (scene number, stage, traceback)
            severity: "warning", "error", "critical"
            job_id: Owning job id, if any
        """
        entry = {
            "timestamp": datetime.datetime.now().isoformat(),
            "service": service,
            "job_id": job_id,
            "message": error_message,
            "details": str(details) if details else None,
            "severity": severity,
        }

        log_dir = os.path.dirname(cls.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        logs = cls._read_logs()
        logs.append(entry)
        if len(logs) > cls.MAX_ENTRIES:
            logs = logs[-cls.MAX_ENTRIES:]

        try:
            with open(cls.LOG_FILE, "w", encoding="utf-8") as f:
                json.dump(logs, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.critical(f"[ErrorManager] Failed to write error log: {e}")

        log_fn = logger.warning if severity == "warning" else logger.error
        log_fn(f"[{severity.upper()}] {service}: {error_message}")

    @classmethod
    def _read_logs(cls) -> List[Dict]:
        if not os.path.exists(cls.LOG_FILE):
            return []
        try:
            with open(cls.LOG_FILE, "r", encoding="utf-8") as f:
                content = f.read()
            if not content.strip():
                return []
            logs = json.loads(content)
            return logs if isinstance(logs, list) else []
        except (OSError, json.JSONDecodeError):
            # 손상된 로그는 새로 시작
            return []

    @classmethod
    def get_recent_errors(cls, limit: int = 20, job_id: str = None) -> List[Dict]:
        """Get recent error logs, newest first."""
        logs = cls._read_logs()
        if job_id:
            logs = [entry for entry in logs if entry.get("job_id") == job_id]
        return sorted(logs, key=lambda x: x["timestamp"], reverse=True)[:limit]

    @classmethod
    def clear_logs(cls):
        """Clear the error log file."""
        if os.path.exists(cls.LOG_FILE):
            os.remove(cls.LOG_FILE)
