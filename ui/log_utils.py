"""Shared logging utilities."""

import json
import shutil
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from core.request_types import Exchange, HeaderList

LOG_ROOT = Path.cwd() / "logs"
CLI_LOG_FILE = LOG_ROOT / "proxy.log"

SENSITIVE_HEADERS = ("cookie", "set-cookie", "authorization")

# Single worker keeps file appends ordered and off the event loop.
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pelo-proxy-log")


def submit_log(fn, *args: Any, **kwargs: Any) -> None:
    """Run a log writer on the background executor."""
    _executor.submit(fn, *args, **kwargs)


def shutdown_log_executor() -> None:
    """Flush pending log writes."""
    _executor.shutdown(wait=True)


def clear_logs(log_root: Path = LOG_ROOT) -> None:
    """Remove logs from previous runs."""
    if log_root.exists():
        shutil.rmtree(log_root)


def write_cli_log(
    level: str,
    message: str,
    *,
    log_file: Path = CLI_LOG_FILE,
    **extra: Any,
) -> None:
    """Append a line to the rolling CLI log file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
    extra_str = " ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""
    line = f"[{timestamp}] {level}: {message}"
    if extra_str:
        line += f" {extra_str}"
    line += "\n"
    with log_file.open("a") as f:
        f.write(line)


def write_exchange_log(
    exchange: Exchange,
    *,
    error: str | None = None,
    log_root: Path = LOG_ROOT,
) -> Path:
    """Write one JSON file describing a finished (or failed) exchange."""
    payload = {
        "timestamp": _utc_now(),
        "id": exchange.id,
        "method": exchange.method,
        "path": exchange.path,
        "route": exchange.prefix,
        "upstream_url": exchange.upstream_url,
        "state": exchange.state.value,
        "status_code": exchange.status_code,
        "truncated": exchange.truncated,
        "elapsed_ms": round(exchange.elapsed_ms, 1),
        "request_headers": _redact_headers(exchange.request_headers),
        "response_headers": _redact_headers(exchange.response_headers),
    }
    if error:
        payload["error"] = error
    return _write_json(log_root / "exchanges", exchange.id, payload)


def _write_json(folder: Path, name: str, payload: dict[str, Any]) -> Path:
    """Write payload to a unique JSON file in the given folder."""
    folder.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S.%fZ")
    file_path = folder / f"{timestamp}_{name}.json"
    file_path.write_text(json.dumps(payload, indent=2, default=str))
    return file_path


def _redact_headers(headers: HeaderList) -> list[list[str]]:
    """Redact session-bearing headers."""
    redacted = []
    for key, value in headers:
        if key.lower() in SENSITIVE_HEADERS:
            redacted.append([key, _mask(value)])
        else:
            redacted.append([key, value])
    return redacted


def _mask(value: str) -> str:
    if len(value) <= 10:
        return "***"
    return value[:6] + "..." + value[-4:]


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()
