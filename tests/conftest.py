"""Shared fixtures for the pipeline test suite.

No poppler binary and no network: pdf2image and the OpenAI client are
replaced with in-memory fakes.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from leads_pipeline.types import ImagePart, InputFile

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


def make_pdf(name: str, pages: int) -> InputFile:
    # Le contenu n'est jamais lu par poppler dans les tests: il encode le nombre de pages.
    return InputFile(name=name, content=f"%PDF-fake pages={pages}".encode(), media_type="application/pdf")


def make_image(name: str, media_type: str = "image/png") -> InputFile:
    return InputFile(name=name, content=f"image:{name}".encode(), media_type=media_type)


class FakeRasterizer:
    """Remplace PageRasterizer: une page = ImagePart('image/jpeg', b'<nom>#<page>')."""

    def __init__(self, pages_by_name: Dict[str, int]):
        self.pages_by_name = pages_by_name
        self.calls: List[str] = []

    async def rasterize_pdf(self, file: InputFile, on_progress=None) -> List[ImagePart]:
        self.calls.append(file.name)
        total = self.pages_by_name[file.name]
        if on_progress:
            on_progress(0, total)
        parts = []
        for i in range(1, total + 1):
            if on_progress:
                on_progress(i, total)
            parts.append(ImagePart(media_type="image/jpeg", data=f"{file.name}#{i}".encode()))
        return parts

    async def rasterize_image(self, file: InputFile) -> ImagePart:
        self.calls.append(file.name)
        return ImagePart(media_type=file.media_type, data=file.content)


class FakeResponses:
    def __init__(
        self,
        output_text: str = "[]",
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        **extra: Any,
    ):
        self.output_text = output_text
        self.error = error
        self.delay = delay
        self.extra = extra
        self.requests: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output_text=self.output_text, **self.extra)


class FakeOpenAI:
    """Remplace AsyncOpenAI: seul `responses.create` (coroutine) est utilisé."""

    def __init__(
        self,
        output_text: str = "[]",
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        **extra: Any,
    ):
        self.responses = FakeResponses(output_text, error, delay, **extra)


@pytest.fixture
def fake_pdf_backend(monkeypatch: pytest.MonkeyPatch):
    """
    Remplace pdfinfo_from_bytes / convert_from_bytes par des fonctions en mémoire.

    Retourne un dict d'état: `calls` (arguments de chaque rendu) et `fail_on_page`.
    """
    state: Dict[str, Any] = {"calls": [], "fail_on_page": None, "fail_open": False}

    def fake_info(content: bytes, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        if state["fail_open"]:
            raise ValueError("Syntax Error: Couldn't find trailer dictionary")
        pages = int(content.decode().split("pages=")[1])
        return {"Pages": pages}

    def fake_convert(content: bytes, dpi: int = 200, first_page: int = 1, last_page: int = 1, **kwargs: Any):
        state["calls"].append({"dpi": dpi, "first_page": first_page, "last_page": last_page})
        if state["fail_on_page"] == first_page:
            raise RuntimeError("poppler render failure")
        shade = (first_page * 40) % 256
        return [Image.new("RGBA", (20, 30), (shade, shade, shade, 255))]

    monkeypatch.setattr("leads_pipeline.raster_service.pdfinfo_from_bytes", fake_info)
    monkeypatch.setattr("leads_pipeline.raster_service.convert_from_bytes", fake_convert)
    return state


RECORD_JSON = (
    '[{"hoTen": "Nguyễn Văn A", "sdtZalo": "0901234567", "cccd": "079123456789", '
    '"tinhThanh": "TP. Hồ Chí Minh", "truongThpt": "THPT Lê Quý Đôn", '
    '"email": "a@example.com", "nganhHoc": "Công nghệ thông tin"}, '
    '{"hoTen": "Trần Thị B", "sdtZalo": "", "cccd": "", "tinhThanh": "Đồng Nai", '
    '"truongThpt": "", "email": "", "nganhHoc": "Marketing"}]'
)


@pytest.fixture
def azure_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AZURE_OPENAI_DEPLOYMENT", "gpt-test")
