import logging
from typing import Callable, List, Optional, Sequence

from .errors import EmptyResultError
from .raster_service import PageRasterizer
from .types import ExtractionProgress, ImagePart, InputFile, MediaKind

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExtractionProgress], None]


class BatchImageCollector:
    """Parcourt les fichiers dans l'ordre et concatène leurs images."""

    def __init__(self, rasterizer: Optional[PageRasterizer] = None):
        self.rasterizer = rasterizer or PageRasterizer()

    async def collect(
        self,
        files: Sequence[InputFile],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ImagePart]:
        report = on_progress or (lambda event: None)
        total_files = len(files)
        parts: List[ImagePart] = []

        for index, file in enumerate(files):
            kind = file.kind

            if kind is MediaKind.PDF:
                def on_page(current: int, total: int, index: int = index, name: str = file.name) -> None:
                    report(
                        ExtractionProgress(
                            file_index=index,
                            total_files=total_files,
                            file_name=name,
                            current_page=current,
                            total_pages=total,
                        )
                    )

                parts.extend(await self.rasterizer.rasterize_pdf(file, on_page))

            elif kind is MediaKind.IMAGE:
                report(ExtractionProgress(file_index=index, total_files=total_files, file_name=file.name))
                parts.append(await self.rasterizer.rasterize_image(file))

            else:
                # TODO: remonter un avertissement visible quand un fichier est ignoré (aujourd'hui: log seulement).
                logger.warning("Type de fichier non supporté ignoré: %s (%s)", file.name, file.media_type)
                continue

        if not parts:
            raise EmptyResultError()

        logger.info("%d image(s) collectée(s) depuis %d fichier(s)", len(parts), total_files)
        return parts
