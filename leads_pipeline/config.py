import os
from pathlib import Path
from typing import Optional

from .types import ProcessConfig


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} doit être un nombre (valeur reçue: {raw!r})") from exc


def load_config(
    out_root: Optional[str] = None,
    deployment: Optional[str] = None,
    render_scale: Optional[float] = None,
    jpeg_quality: Optional[float] = None,
    csv_filename: Optional[str] = None,
) -> ProcessConfig:
    root = Path(out_root or os.getenv("PIPELINE_OUT_ROOT", "exports")).expanduser().resolve()
    root.mkdir(parents=True, exist_ok=True)

    scale = render_scale if render_scale is not None else _env_float("RENDER_SCALE", 1.5)
    quality = jpeg_quality if jpeg_quality is not None else _env_float("JPEG_QUALITY", 0.9)
    if scale <= 0:
        raise ValueError(f"Le facteur de rendu doit être > 0 (reçu: {scale})")
    if not 0 < quality <= 1:
        raise ValueError(f"La qualité JPEG doit être dans ]0, 1] (reçu: {quality})")

    cfg = ProcessConfig(
        out_root=root,
        deployment=deployment or os.getenv("AZURE_OPENAI_DEPLOYMENT"),
        render_scale=scale,
        jpeg_quality=quality,
        csv_filename=csv_filename or os.getenv("CSV_FILENAME", "hsu_leads_data.csv"),
        api_timeout=int(os.getenv("API_TIMEOUT", "300")),
    )
    return cfg
