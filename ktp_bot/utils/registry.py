from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def load_registry(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}


def save_registry(path: Path, registry: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(registry, ensure_ascii=False, indent=2), encoding="utf-8")


def record_visit(path: Path, visitor: Dict[str, Optional[str]], purpose: str) -> bool:
    """Store the visitor once per NIK and always append a visit.

    Returns True when the visitor was new.
    """
    nik = visitor["nik"]
    registry = load_registry(path)
    visitors = registry.setdefault("visitors", {})
    visits = registry.setdefault("visits", [])

    is_new = nik not in visitors
    if is_new:
        visitors[nik] = {
            "nik": nik,
            "nama": visitor.get("nama"),
            "tempat_lahir": visitor.get("tempat_lahir") or None,
            "tanggal_lahir": visitor.get("tanggal_lahir") or None,
            "alamat": visitor.get("alamat") or None,
        }

    visits.append(
        {
            "visitor_nik": nik,
            "purpose": purpose,
            "visited_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
    )
    save_registry(path, registry)
    return is_new


def get_visitor(path: Path, nik: str) -> Optional[Dict[str, Any]]:
    return load_registry(path).get("visitors", {}).get(nik)


def get_visits(path: Path, nik: str) -> List[Dict[str, Any]]:
    return [v for v in load_registry(path).get("visits", []) if v.get("visitor_nik") == nik]
