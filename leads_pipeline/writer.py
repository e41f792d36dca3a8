import csv
import io
from pathlib import Path
from typing import Dict, Iterable, List

from .types import RECORD_KEYS, StudentRecord

BOM = "\ufeff"

DISPLAY_HEADERS: Dict[str, str] = {
    "hoTen": "Họ & tên",
    "sdtZalo": "SĐT/ Zalo",
    "cccd": "Căn cước Công dân",
    "tinhThanh": "Tỉnh/ Thành phố (trước sáp nhập)",
    "truongThpt": "Tên trường THPT",
    "email": "Email nhận thông tin/ kết quả xét",
    "nganhHoc": "Ngành học xét",
}


def _quote(value: str) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def records_to_csv(records: Iterable[StudentRecord]) -> str:
    """
    Sérialise les enregistrements en CSV compatible tableur.

    BOM UTF-8 en tête, en-têtes localisés, chaque valeur entre guillemets
    (guillemets internes doublés), lignes séparées par un simple `\\n`.
    """
    header = ",".join(_quote(DISPLAY_HEADERS[key]) for key in RECORD_KEYS)
    rows = [",".join(_quote(v) for v in record.values()) for record in records]
    return BOM + "\n".join([header, *rows])


def records_from_csv(text: str) -> List[StudentRecord]:
    """Relit un CSV produit par `records_to_csv` (guillemets doublés, retours à la ligne inclus)."""
    if text.startswith(BOM):
        text = text[len(BOM):]
    reader = csv.reader(io.StringIO(text, newline=""))
    rows = list(reader)
    if not rows:
        return []
    return [StudentRecord.from_dict(dict(zip(RECORD_KEYS, row))) for row in rows[1:]]


def write_csv(out_dir: Path, records: Iterable[StudentRecord], filename: str = "hsu_leads_data.csv") -> Path:
    """Écrit l'export CSV (fichier à télécharger) dans `out_dir/filename`."""
    path = out_dir / filename
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(records_to_csv(records))
    return path
