"""
Model configuration for the Claude-backed capabilities.
Centralized per-operation settings following DRY principle.
"""

import os
from typing import Dict, Any, Optional
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class Operation(str, Enum):
    STUDY_MAP = "study_map"
    QUIZ = "quiz"
    RESOURCE_SEARCH = "resource_search"
    CHAT = "chat"
    HEALTH_PROBE = "health_probe"


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


DEFAULT_MODEL = os.getenv("CLAUDE_MODEL", "claude-haiku-4-5")
DEFAULT_TIMEOUT_SECONDS = _env_float("CLAUDE_TIMEOUT_SECONDS", 60.0)
HEALTH_TTL_SECONDS = _env_float("CLAUDE_HEALTH_TTL_SECONDS", 300.0)

# Per-operation settings
OPERATION_CONFIGS: Dict[Operation, Dict[str, Any]] = {
    Operation.STUDY_MAP: {
        "max_tokens": 16384,
        "temperature": 0.2,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
    },
    Operation.QUIZ: {
        "max_tokens": 4096,
        "temperature": 0.6,
        "exam_temperature": 0.3,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
    },
    Operation.RESOURCE_SEARCH: {
        "max_tokens": 4096,
        "temperature": 0.3,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
        "web_search_max_uses": 3,
    },
    Operation.CHAT: {
        "max_tokens": 2048,
        "temperature": 0.7,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
    },
    Operation.HEALTH_PROBE: {
        "max_tokens": 8,
        "temperature": 0.0,
        "timeout_seconds": 10.0,
    },
}

# Syllabus text beyond this is dropped before prompting
MAX_SYLLABUS_CHARS = 15000

DEFAULT_MAX_RESULTS = 10


class ModelConfig:
    """Model configuration manager"""

    @staticmethod
    def get_config(operation: Operation, model_key: Optional[str] = None) -> Dict[str, Any]:
        """Get configuration for an operation, including the model name"""
        if operation not in OPERATION_CONFIGS:
            raise ValueError(f"Unknown operation: {operation}. Available: {[op.value for op in OPERATION_CONFIGS]}")

        return {"model": model_key or DEFAULT_MODEL, **OPERATION_CONFIGS[operation]}

    @staticmethod
    def timeout_for(operation: Operation) -> float:
        return float(OPERATION_CONFIGS[operation]["timeout_seconds"])
