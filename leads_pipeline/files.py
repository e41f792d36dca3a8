import mimetypes
from pathlib import Path
from typing import Iterable, List, Optional

from .types import InputFile, MediaKind


def media_kind(media_type: Optional[str]) -> MediaKind:
    return MediaKind.from_media_type(media_type)


def is_accepted(media_type: Optional[str]) -> bool:
    """Seuls les PDF (`application/pdf`) et les images (`image/*`) sont acceptés."""
    return media_kind(media_type) is not MediaKind.UNSUPPORTED


def filter_accepted(files: Iterable[InputFile]) -> List[InputFile]:
    return [f for f in files if is_accepted(f.media_type)]


def guess_media_type(path: Path) -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or "application/octet-stream"


def load_input_file(path: str) -> InputFile:
    p = Path(path).expanduser().resolve()
    return InputFile(name=p.name, content=p.read_bytes(), media_type=guess_media_type(p))


def find_documents(input_dir: str) -> List[Path]:
    """
    Retourne tous les fichiers acceptés dans le dossier d'entrée :
    - PDF
    - Images (tout type MIME `image/*` reconnu)

    Le tri garantit un ordre de traitement stable d'une exécution à l'autre.
    """
    root = Path(input_dir).expanduser().resolve()
    return sorted(p for p in root.rglob("*") if p.is_file() and is_accepted(guess_media_type(p)))
