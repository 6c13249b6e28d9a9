"""
Store and retrieve custom clause configuration on disk.

One JSON file holds every clause set, keyed by clause-set key
(e.g. "unfurnished_lease"). Values are stored as given; shape checks happen
where the clauses are consumed.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CLAUSES_PATH = Path(__file__).resolve().parent / "config" / "document_templates.json"


def clauses_path() -> Path:
    raw = (os.getenv("CLAUSES_CONFIG_PATH") or "").strip()
    return Path(raw) if raw else DEFAULT_CLAUSES_PATH


def _read_all(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("CLAUSES_READ_FAILED path=%s err=%s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("CLAUSES_READ_FAILED path=%s err=top-level value is not an object", path)
        return {}
    return data


def load_config(key: str) -> Any:
    """Return the stored value for `key`, or None when absent."""
    return _read_all(clauses_path()).get(key)


def save_config(key: str, value: Any) -> None:
    path = clauses_path()
    data = _read_all(path)
    data[key] = value
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def list_keys() -> list[str]:
    return sorted(_read_all(clauses_path()).keys())
