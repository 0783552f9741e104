from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import normalize_str


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clip_text(value: Any, limit: int) -> str:
    text = normalize_str(value).strip()
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()


def append_generation_journal(
    path: Path,
    *,
    mention_id: str,
    source: str,
    input_text: str,
    ticker: str,
    name: str,
    description: str,
    fallback: bool,
    responded: bool,
    parent_id: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Append one JSON line describing a generation attempt for a mention."""
    path.parent.mkdir(parents=True, exist_ok=True)
    row: Dict[str, Any] = {
        "ts": _utc_now_iso(),
        "mention_id": normalize_str(mention_id).strip(),
        "source": normalize_str(source).strip().lower(),
        "input_text": _clip_text(input_text, 1000),
        "ticker": normalize_str(ticker).strip(),
        "name": normalize_str(name).strip(),
        "description": _clip_text(description, 1000),
        "fallback": bool(fallback),
        "responded": bool(responded),
    }
    if parent_id:
        row["parent_id"] = normalize_str(parent_id).strip()
    if error:
        row["error"] = _clip_text(error, 400)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(row, ensure_ascii=True) + "\n")


def read_generation_journal(path: Path, limit: int = 50) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    rows: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(item, dict):
                rows.append(item)
    return rows[-limit:] if limit > 0 else rows
