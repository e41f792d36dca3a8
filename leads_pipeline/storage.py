import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import PipelineError
from .types import PipelineResult


def _safe_dir_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in ("_", "-", ".") else "_" for c in name)


def ensure_run_dir(out_root: Path, base_name: Optional[str] = None) -> Path:
    base = _safe_dir_name(base_name or datetime.now().strftime("run_%Y%m%d_%H%M%S"))
    candidate = out_root / base
    if not candidate.exists():
        candidate.mkdir(parents=True, exist_ok=True)
        return candidate
    # fallback unique
    unique = out_root / f"{base}_{uuid.uuid4().hex[:8]}"
    unique.mkdir(parents=True, exist_ok=True)
    return unique


def write_json(path: Path, data: Dict[str, Any]) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def write_status(run_dir: Path, status: Dict[str, Any]) -> Path:
    p = run_dir / "status.json"
    write_json(p, status)
    return p


def write_errors(run_dir: Path, errors: Dict[str, Any]) -> Path:
    p = run_dir / "errors.json"
    write_json(p, errors)
    return p


def error_payload(error: PipelineError) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"kind": error.kind.value, "message": error.message}
    if error.__cause__ is not None:
        # Détail technique réservé aux opérateurs (jamais affiché à l'utilisateur).
        payload["cause"] = repr(error.__cause__)
    return payload


def write_run_report(run_dir: Path, inputs: list, result: PipelineResult, csv_path: Optional[Path] = None) -> Path:
    status: Dict[str, Any] = {
        "inputs": inputs,
        "ok": result.ok,
        "record_count": len(result.records) if result.records is not None else 0,
    }
    if csv_path is not None:
        status["csv"] = str(csv_path)
    if result.error is not None:
        write_errors(run_dir, error_payload(result.error))
    return write_status(run_dir, status)
