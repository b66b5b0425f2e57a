"""Logging for the orchestration core.

Application records go to `<log_dir>/cognito.log` and the console. The
`log_*` helpers write one JSON payload per record so LLM calls, tool
dispatches, search attempts and plan transitions can be grepped by prefix.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from cognito.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Framework and transport loggers held at `noisy_log_level`.
NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "openai._base_client",
    "asyncio",
)


def _level(name: str, default: int) -> int:
    return getattr(logging, name.upper(), default)


def _configure() -> logging.Logger:
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=_level(settings.app_log_level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_dir / "cognito.log"), logging.StreamHandler()],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(_level(settings.noisy_log_level, logging.WARNING))
    return logging.getLogger("cognito")


logger = _configure()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_llm_call(
    model: str,
    caller: str,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log an LLM API call."""
    call_data = {
        "timestamp": _now(),
        "model": model,
        "caller": caller,
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    logger.info(f"LLM_CALL: {json.dumps(call_data)}")


def log_tool_call(
    tool_name: str,
    tool_call_id: str,
    status: str,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one tool dispatch."""
    tool_data = {
        "timestamp": _now(),
        "tool_name": tool_name,
        "tool_call_id": tool_call_id,
        "status": status,
        "duration_ms": duration_ms,
        "error": error,
    }
    logger.info(f"TOOL_CALL: {json.dumps(tool_data)}")


def log_search_attempt(
    query: str,
    engine: str,
    attempt: int,
    status: str,
    error: Optional[str] = None,
) -> None:
    """Log a single engine attempt made by the search aggregator."""
    attempt_data = {
        "timestamp": _now(),
        "query": query[:200],
        "engine": engine,
        "attempt": attempt,
        "status": status,
        "error": error,
    }
    level = logging.INFO if status == "success" else logging.WARNING
    logger.log(level, f"SEARCH_ATTEMPT: {json.dumps(attempt_data)}")


def log_event(
    event_type: str,
    message: str,
    **kwargs: Any,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": _now(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {json.dumps(event_data, default=str)}")
