from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_document_dict(
    path: str | Path,
    *,
    error_message: str | None = None,
) -> dict[str, Any]:
    """Load a YAML or JSON object from ``path``.

    JSON is a subset of YAML, so a single safe loader handles both.
    """
    resolved = Path(path)
    if not resolved.exists():
        raise FileNotFoundError(f"Document not found: {resolved}")
    with resolved.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if isinstance(payload, dict):
        return payload
    if error_message is not None:
        raise ValueError(error_message)
    raise ValueError(f"Expected YAML or JSON object in '{resolved}'.")


def dump_document(payload: Any) -> str:
    return yaml.safe_dump(payload, sort_keys=False).rstrip()
