"""Environment-driven configuration for the voice companion server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple

DEFAULT_LLM_MODEL_NAME = "gpt-4o-mini"
DEFAULT_STT_MODEL_NAME = "gpt-4o-transcribe"
DEFAULT_TTS_MODEL_ID = "gpt-4o-mini-tts"
DEFAULT_VOICE_ID = "shimmer"
DEFAULT_STT_SERVICE = "openai"

INPUT_SAMPLE_RATE = 16_000

# Keep replies short so synthesis of a whole turn stays well under the deadline.
TEXT_CONFIG = {
    "max_output_tokens": 100,
    "temperature": 0.1,
    "top_p": 0.5,
}

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:3000",
)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the deployment configuration.

    Build it with :meth:`from_env` after ``load_dotenv()`` has run. Tests
    construct it directly with keyword overrides.
    """

    openai_api_key: Optional[str] = None
    llm_model_name: str = DEFAULT_LLM_MODEL_NAME
    stt_model_name: str = DEFAULT_STT_MODEL_NAME
    tts_model_id: str = DEFAULT_TTS_MODEL_ID
    default_voice_id: str = DEFAULT_VOICE_ID
    stt_services: FrozenSet[str] = frozenset({DEFAULT_STT_SERVICE})
    default_stt_service: str = DEFAULT_STT_SERVICE
    disable_auto_interruption: bool = False
    hard_error_codes: FrozenSet[int] = frozenset({4, 9})
    hard_error_patterns: Tuple[str, ...] = ("timed out", "executor is not running")
    soft_error_patterns: Tuple[str, ...] = ("no text",)
    input_sample_rate: int = INPUT_SAMPLE_RATE
    speech_threshold: float = 0.015
    pause_duration_threshold_ms: int = 700
    min_speech_duration_ms: int = 200
    database_dir: Path = field(default_factory=lambda: Path("database"))
    share_ttl_seconds: int = 2_592_000
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    @property
    def interruption_aware(self) -> bool:
        """Whether stale interaction output is suppressed."""
        return not self.disable_auto_interruption

    @classmethod
    def from_env(cls) -> "Settings":
        """Read every setting from the process environment."""
        try:
            hard_codes = frozenset(int(code) for code in _env_list("PIPELINE_HARD_ERROR_CODES", ("4", "9")))
        except ValueError as exc:
            raise RuntimeError("PIPELINE_HARD_ERROR_CODES must be a comma separated list of integers") from exc

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            llm_model_name=os.getenv("LLM_MODEL_NAME", DEFAULT_LLM_MODEL_NAME),
            stt_model_name=os.getenv("STT_MODEL_NAME", DEFAULT_STT_MODEL_NAME),
            tts_model_id=os.getenv("TTS_MODEL_ID", DEFAULT_TTS_MODEL_ID),
            default_voice_id=os.getenv("DEFAULT_VOICE_ID", DEFAULT_VOICE_ID),
            stt_services=frozenset(s.lower() for s in _env_list("STT_SERVICES", (DEFAULT_STT_SERVICE,))),
            default_stt_service=os.getenv("DEFAULT_STT_SERVICE", DEFAULT_STT_SERVICE).lower(),
            disable_auto_interruption=_env_flag("DISABLE_AUTO_INTERRUPTION"),
            hard_error_codes=hard_codes,
            hard_error_patterns=_env_list(
                "PIPELINE_HARD_ERROR_PATTERNS", ("timed out", "executor is not running")
            ),
            soft_error_patterns=_env_list("PIPELINE_SOFT_ERROR_PATTERNS", ("no text",)),
            input_sample_rate=_env_int("INPUT_SAMPLE_RATE", INPUT_SAMPLE_RATE),
            speech_threshold=_env_float("SPEECH_THRESHOLD", 0.015),
            pause_duration_threshold_ms=_env_int("PAUSE_DURATION_THRESHOLD_MS", 700),
            min_speech_duration_ms=_env_int("MIN_SPEECH_DURATION_MS", 200),
            database_dir=Path(os.getenv("DATABASE_DIR", "database")).expanduser(),
            share_ttl_seconds=_env_int("SHARE_TTL_SECONDS", 2_592_000),
            cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
