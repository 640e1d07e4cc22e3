"""Configuration constants and AgentConfig dataclass."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


# Base directory for all larder data
DATA_DIR = Path.home() / ".larder"
HISTORY_FILE = DATA_DIR / "history"

# Remote completion endpoint (the pantry agent proxy)
AGENT_API_URL = os.environ.get("LARDER_AGENT_API_URL", "")
AGENT_USER_ID = os.environ.get("LARDER_USER_ID", "")
TELEMETRY_URL = os.environ.get("LARDER_TELEMETRY_URL", "")

# Local backend
OLLAMA_HOST = os.environ.get("OLLAMA_HOST", "http://localhost:11434")
DEFAULT_MODEL = os.environ.get("LARDER_MODEL", "qwen2.5:7b")
NUM_CTX = 8192

DEFAULT_LOCALE = os.environ.get("LARDER_LOCALE", "en")

# Model gateway
REQUEST_TIMEOUT = 30.0  # seconds, per attempt
MAX_MODEL_RETRIES = 2  # 3 attempts total
RETRY_BASE_DELAY = 1.0
TRANSIENT_STATUS_CODES = frozenset({502, 503, 504})

# Orchestration loop
MAX_AGENT_ITERATIONS = 4
MALFORMED_RETRY_DELAY = 0.5
PENDING_TOOL_DELAY = 0.2
PENDING_TOOL_CHECKS = 3

# Tool calls
MAX_TOOL_CALL_ID_LENGTH = 40

# Composer
USER_PROMPT_MAX_LENGTH = 500


@dataclass
class AgentConfig:
    """Runtime configuration for one agent session."""

    provider: str = "http"  # "http" or "ollama"
    api_url: str = AGENT_API_URL
    model: str = DEFAULT_MODEL
    ollama_host: str = OLLAMA_HOST
    num_ctx: int = NUM_CTX
    locale: str = DEFAULT_LOCALE
    user_id: str = AGENT_USER_ID
    telemetry_url: str = TELEMETRY_URL
    request_timeout: float = REQUEST_TIMEOUT
    max_retries: int = MAX_MODEL_RETRIES
    retry_base_delay: float = RETRY_BASE_DELAY
    max_iterations: int = MAX_AGENT_ITERATIONS
    malformed_retry_delay: float = MALFORMED_RETRY_DELAY
    pending_tool_delay: float = PENDING_TOOL_DELAY
    pending_tool_checks: int = PENDING_TOOL_CHECKS

    @property
    def has_endpoint(self) -> bool:
        if self.provider == "ollama":
            return bool(self.model)
        return bool(self.api_url)
