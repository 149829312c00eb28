"""Deterministic request keys built from an operation name and its parameters."""

import json
from typing import Any, Dict, Optional


def _canonical(params: Dict[str, Any]) -> str:
    """Serialize params with sorted keys so ordering never changes the key."""
    return json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)


def build_request_key(operation: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Generate a request key from an operation name and params.

    Top-level params set to None are dropped, so an omitted argument and an
    explicit None map to the same key.

    Args:
        operation: Name of the operation (e.g. "getRecommendations")
        params: Parameters of the call

    Returns:
        Key of the form "<operation>:<canonical json>"
    """
    if not operation:
        raise ValueError("operation name must be a non-empty string")

    cleaned = {k: v for k, v in (params or {}).items() if v is not None}
    return f"{operation}:{_canonical(cleaned)}"
