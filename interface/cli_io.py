import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def iso_timestamp() -> str:
    """UTC timestamp stamped on every CLI response."""
    return datetime.now(timezone.utc).isoformat()


def structured_response(
    command: str,
    *,
    status: str = "OK",
    message: str = "",
    payload: Optional[Dict[str, Any]] = None,
    exit_code: int = 0,
) -> int:
    """Print one JSON document describing the outcome and return the exit code."""
    body: Dict[str, object] = {
        "command": command,
        "status": status,
        "message": message,
        "timestamp": iso_timestamp(),
        "payload": payload or {},
    }
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return exit_code


def structured_error(command: str, message: str, *, payload: Optional[Dict[str, Any]] = None) -> int:
    return structured_response(command, status="ERROR", message=message, payload=payload, exit_code=1)


def error_response(command: str, exc: Exception) -> int:
    """Render an exception; the class name lets scripts tell error kinds apart."""
    return structured_error(command, str(exc), payload={"error": type(exc).__name__})


__all__ = ["iso_timestamp", "structured_response", "structured_error", "error_response"]
