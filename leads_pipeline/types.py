from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import PipelineError


@dataclass
class ProcessConfig:
    """Configuration de haut niveau pour exécuter le pipeline."""
    out_root: Path
    deployment: Optional[str] = None     # nom du déploiement Azure OpenAI
    render_scale: float = 1.5            # facteur d'agrandissement des pages PDF
    jpeg_quality: float = 0.9            # qualité JPEG (0, 1]
    csv_filename: str = "hsu_leads_data.csv"
    api_timeout: int = 300


class MediaKind(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_media_type(cls, media_type: Optional[str]) -> "MediaKind":
        mt = (media_type or "").strip().lower()
        if mt == "application/pdf":
            return cls.PDF
        if mt.startswith("image/"):
            return cls.IMAGE
        return cls.UNSUPPORTED


@dataclass(frozen=True)
class InputFile:
    """Fichier sélectionné par l'utilisateur (PDF ou image)."""
    name: str
    content: bytes = field(repr=False)
    media_type: str = ""

    @property
    def kind(self) -> MediaKind:
        return MediaKind.from_media_type(self.media_type)


@dataclass(frozen=True)
class ImagePart:
    """Une image envoyée au service d'extraction (octets encodés + type MIME)."""
    media_type: str
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class ExtractionProgress:
    """
    Événement de progression transitoire.

    `current_page` / `total_pages` valent None pour une image simple
    ("préparation de l'image"), sinon ils décrivent l'avancement du PDF.
    """
    file_index: int
    total_files: int
    file_name: str
    current_page: Optional[int] = None
    total_pages: Optional[int] = None

    @property
    def prefix(self) -> str:
        if self.total_files > 1:
            return f"[{self.file_index + 1}/{self.total_files}] {self.file_name}: "
        return ""

    @property
    def is_page_event(self) -> bool:
        return self.total_pages is not None


# Clés JSON demandées au modèle → attributs Python, dans l'ordre d'export.
RECORD_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("hoTen", "full_name"),
    ("sdtZalo", "phone"),
    ("cccd", "national_id"),
    ("tinhThanh", "province"),
    ("truongThpt", "school"),
    ("email", "email"),
    ("nganhHoc", "major"),
)

RECORD_KEYS: List[str] = [key for key, _ in RECORD_FIELDS]


@dataclass(frozen=True)
class StudentRecord:
    """Une ligne extraite: sept champs texte, chaîne vide si non trouvé."""
    full_name: str = ""
    phone: str = ""
    national_id: str = ""
    province: str = ""
    school: str = ""
    email: str = ""
    major: str = ""

    @classmethod
    def from_dict(cls, item: Mapping[str, Any]) -> "StudentRecord":
        values: Dict[str, str] = {}
        for key, attr in RECORD_FIELDS:
            value = item.get(key)
            values[attr] = "" if value is None else str(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        data = asdict(self)
        return {key: data[attr] for key, attr in RECORD_FIELDS}

    def values(self) -> List[str]:
        return [getattr(self, attr) for _, attr in RECORD_FIELDS]


@dataclass(frozen=True)
class PipelineResult:
    """Issue d'une exécution: soit des enregistrements, soit une erreur classée."""
    records: Optional[List[StudentRecord]] = None
    error: Optional[PipelineError] = None

    def __post_init__(self) -> None:
        if (self.records is None) == (self.error is None):
            raise ValueError("PipelineResult attend soit des records, soit une erreur (jamais les deux).")

    @property
    def ok(self) -> bool:
        return self.error is None


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    COLLECTING = "collecting"
    EXTRACTING = "extracting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineSnapshot:
    """Vue immuable de l'état de l'orchestrateur, diffusée aux abonnés."""
    state: RunState
    is_loading: bool = False
    progress_message: Optional[str] = None
    records: Optional[List[StudentRecord]] = None
    error: Optional[PipelineError] = None
