import asyncio
import io
import logging
from typing import Callable, List, Optional

from pdf2image import convert_from_bytes, pdfinfo_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError
from PIL import Image

from .errors import DocumentParseError
from .types import ImagePart, InputFile

logger = logging.getLogger(__name__)

PDF_PAGE_MEDIA_TYPE = "image/jpeg"

PageProgressCallback = Callable[[int, int], None]


def _encode_jpeg(page_img: Image.Image, quality: int) -> bytes:
    if page_img.mode != "RGB":
        page_img = page_img.convert("RGB")
    with io.BytesIO() as buf:
        page_img.save(buf, format="JPEG", quality=quality)
        return buf.getvalue()


class PageRasterizer:
    """
    Convertit un fichier d'entrée en images prêtes pour le modèle vision.

    - PDF : chaque page est rendue (pdf2image/poppler) puis encodée en JPEG,
      strictement page par page, dans l'ordre (rendu poppler exécuté hors de la boucle asyncio).
    - Image : transmise telle quelle, sans redimensionnement ni réencodage.
    """

    def __init__(self, render_scale: float = 1.5, jpeg_quality: float = 0.9):
        self.render_scale = render_scale
        self.jpeg_quality = jpeg_quality

    @property
    def dpi(self) -> int:
        # Un PDF est exprimé en points (72 par pouce).
        return int(round(72 * self.render_scale))

    async def rasterize_pdf(
        self,
        file: InputFile,
        on_progress: Optional[PageProgressCallback] = None,
    ) -> List[ImagePart]:
        report = on_progress or (lambda current, total: None)

        try:
            info = await asyncio.to_thread(pdfinfo_from_bytes, file.content)
            total_pages = int(info["Pages"])
        except PDFInfoNotInstalledError:
            # Poppler absent: problème d'installation, pas de document.
            raise
        except Exception as exc:
            logger.exception("Ouverture du PDF impossible: %s", file.name)
            raise DocumentParseError() from exc

        report(0, total_pages)

        parts: List[ImagePart] = []
        quality = int(round(self.jpeg_quality * 100))
        for page_no in range(1, total_pages + 1):
            report(page_no, total_pages)
            try:
                pages = await asyncio.to_thread(
                    convert_from_bytes,
                    file.content,
                    dpi=self.dpi,
                    first_page=page_no,
                    last_page=page_no,
                )
                if not pages:
                    raise ValueError(f"page {page_no} vide après rendu")
                data = await asyncio.to_thread(_encode_jpeg, pages[0], quality)
            except PDFInfoNotInstalledError:
                raise
            except Exception as exc:
                # Une page en échec invalide tout le document: les pages déjà rendues sont abandonnées.
                logger.exception("Rendu de la page %d/%d impossible: %s", page_no, total_pages, file.name)
                raise DocumentParseError() from exc
            parts.append(ImagePart(media_type=PDF_PAGE_MEDIA_TYPE, data=data))

        logger.debug("%s: %d page(s) rendue(s) à %d DPI", file.name, len(parts), self.dpi)
        return parts

    async def rasterize_image(self, file: InputFile) -> ImagePart:
        return ImagePart(media_type=file.media_type, data=file.content)
