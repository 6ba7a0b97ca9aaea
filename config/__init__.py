"""
BookTrailer Configuration Loader

YAML 파일이 있으면 읽고, 없으면 코드에 내장된 기본값을 사용합니다.
QC 규칙 테이블은 프로세스 시작 시 한 번만 만들어 검증기에 값으로 넘깁니다.
"""

import os
import yaml
from functools import lru_cache
from pathlib import Path
from typing import Dict, Any, Optional

from pydantic import ValidationError

from schemas import QCRules, RetryLimits
from utils.errors import QCConfigError

# 기본 설정 디렉토리
CONFIG_DIR = Path(__file__).parent


def _read_yaml(config_path) -> Optional[Dict[str, Any]]:
    if not os.path.exists(config_path):
        return None
    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_pipeline_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    파이프라인 설정 로드

    Args:
        config_path: 설정 파일 경로 (기본: config/pipeline.yaml)

    Returns:
        설정 딕셔너리 (파일 값이 기본값을 덮어씀)
    """
    if config_path is None:
        config_path = CONFIG_DIR / "pipeline.yaml"

    config = get_default_pipeline_config()
    loaded = _read_yaml(config_path)
    if loaded:
        for key, value in loaded.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value
    return config


def get_default_pipeline_config() -> Dict[str, Any]:
    """기본 파이프라인 설정 반환 (환경변수 반영)"""
    return {
        "worker": {
            "concurrency": int(os.getenv("WORKER_CONCURRENCY", "2")),
        },
        "storage": {
            "type": os.getenv("STORAGE_TYPE", "local"),
            "path": os.getenv("STORAGE_PATH", "./storage/videos"),
            "public_prefix": os.getenv("STORAGE_PUBLIC_PREFIX", "/videos"),
        },
        "backend": {
            "url": os.getenv("BACKEND_URL", "http://localhost:3000"),
            "internal_secret": os.getenv("INTERNAL_API_SECRET", ""),
            "max_retries": 3,
        },
        "provider": {
            "name": os.getenv("GENERATION_PROVIDER", "gemini"),
        },
        "paths": {
            "temp_dir": os.getenv("TEMP_DIR", "./temp"),
        },
        "qc": {
            "max_script_regenerations": 2,
        },
    }


def get_default_retry_limits() -> Dict[str, Any]:
    """기본 단계별 재시도 한도 반환."""
    return {
        "script": 3,
        "keyframe": 3,
        "video": 2,
        "base_delay_sec": {"script": 1.0, "keyframe": 2.0, "video": 3.0},
    }


def load_retry_limits() -> RetryLimits:
    """
    재시도 한도 로드 (config/pipeline.yaml 의 retry_limits 섹션 우선).

    Returns:
        RetryLimits (불변)
    """
    overrides = load_pipeline_config().get("retry_limits") or {}
    return RetryLimits(**{**get_default_retry_limits(), **overrides})


@lru_cache(maxsize=None)
def load_qc_rules(config_path: Optional[str] = None) -> QCRules:
    """
    QC 규칙 테이블 로드.

    config/qc_rules.yaml 이 있으면 섹션 단위로 내장 기본값을 덮어씁니다.
    결과는 캐시되어 프로세스당 한 번만 생성됩니다.

    Raises:
        QCConfigError: YAML 값이 규칙 스키마와 맞지 않을 때
    """
    if config_path is None:
        config_path = str(CONFIG_DIR / "qc_rules.yaml")

    loaded = _read_yaml(config_path)
    if not loaded:
        return QCRules()

    try:
        return QCRules(**loaded.get("qc_rules", loaded))
    except ValidationError as e:
        raise QCConfigError(f"Invalid QC rules in {config_path}: {e}") from e
