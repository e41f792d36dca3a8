import logging
from typing import Callable, List, Optional, Sequence

from .collector import BatchImageCollector
from .errors import NoFilesSelectedError, PipelineError, UnclassifiedServiceError
from .extraction_service import ExtractionClient
from .raster_service import PageRasterizer
from .types import (
    ExtractionProgress,
    InputFile,
    PipelineResult,
    PipelineSnapshot,
    ProcessConfig,
    RunState,
    StudentRecord,
)

logger = logging.getLogger(__name__)

Listener = Callable[[PipelineSnapshot], None]


def format_progress(event: ExtractionProgress) -> Optional[str]:
    """Texte affiché pour un événement de conversion (None = rien à afficher)."""
    if event.is_page_event:
        if not event.total_pages:
            return None
        return f"{event.prefix}Converting PDF... Page {event.current_page} of {event.total_pages}"
    return f"{event.prefix}Preparing image..."


def analyzing_message(image_count: int) -> str:
    page_text = "1 image" if image_count == 1 else f"{image_count} pages/images"
    return f"Analyzing your document(s) ({page_text}) with the AI model..."


class PipelineOrchestrator:
    """
    Orchestrateur principal: fichiers → images → appel d'extraction → enregistrements.

    Machine à états: IDLE → VALIDATING → COLLECTING → EXTRACTING → SUCCEEDED | FAILED,
    puis retour à IDLE. Les abonnés reçoivent un `PipelineSnapshot` à chaque changement.
    Une seule exécution à la fois.
    """

    def __init__(
        self,
        collector: Optional[BatchImageCollector] = None,
        client: Optional[ExtractionClient] = None,
    ):
        self.collector = collector or BatchImageCollector()
        self.client = client or ExtractionClient()
        self._listeners: List[Listener] = []

        self.state = RunState.IDLE
        self.is_loading = False
        self.progress_message: Optional[str] = None
        self.records: Optional[List[StudentRecord]] = None
        self.error: Optional[PipelineError] = None

    @classmethod
    def from_config(cls, cfg: ProcessConfig) -> "PipelineOrchestrator":
        rasterizer = PageRasterizer(render_scale=cfg.render_scale, jpeg_quality=cfg.jpeg_quality)
        return cls(
            collector=BatchImageCollector(rasterizer),
            client=ExtractionClient(deployment=cfg.deployment, timeout=cfg.api_timeout),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> PipelineSnapshot:
        return PipelineSnapshot(
            state=self.state,
            is_loading=self.is_loading,
            progress_message=self.progress_message,
            records=list(self.records) if self.records is not None else None,
            error=self.error,
        )

    def _publish(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)

    def _set(self, **changes) -> None:
        for name, value in changes.items():
            setattr(self, name, value)
        self._publish()

    def _on_collect_progress(self, event: ExtractionProgress) -> None:
        message = format_progress(event)
        if message is not None:
            self._set(progress_message=message)

    def reset(self) -> None:
        """Nouvelle sélection de fichiers: on efface le résultat précédent."""
        if self.is_loading:
            raise RuntimeError("Impossible de réinitialiser pendant une exécution.")
        self._set(state=RunState.IDLE, records=None, error=None, progress_message=None)

    async def run(self, files: Optional[Sequence[InputFile]]) -> PipelineResult:
        if self.is_loading:
            raise RuntimeError("Une exécution est déjà en cours.")

        self._set(state=RunState.VALIDATING, records=None, error=None, progress_message=None)

        if not files:
            return self._finish(error=NoFilesSelectedError())

        files = list(files)
        records: Optional[List[StudentRecord]] = None
        error: Optional[PipelineError] = None

        self._set(is_loading=True, state=RunState.COLLECTING, progress_message="Starting process...")
        try:
            parts = await self.collector.collect(files, self._on_collect_progress)

            self._set(state=RunState.EXTRACTING, progress_message=analyzing_message(len(parts)))
            records = await self.client.extract(parts)
        except PipelineError as exc:
            logger.warning("Exécution en échec (%s): %s", exc.kind.value, exc.message)
            error = exc
        except Exception as exc:
            logger.exception("Erreur inattendue pendant l'exécution du pipeline")
            error = UnclassifiedServiceError("An unknown error occurred during processing.")
            error.__cause__ = exc
        finally:
            self.is_loading = False
            self.progress_message = None

        return self._finish(records=records, error=error)

    def _finish(
        self,
        records: Optional[List[StudentRecord]] = None,
        error: Optional[PipelineError] = None,
    ) -> PipelineResult:
        if error is not None:
            self._set(state=RunState.FAILED, records=None, error=error, is_loading=False, progress_message=None)
            result = PipelineResult(error=error)
        else:
            self._set(
                state=RunState.SUCCEEDED,
                records=list(records or []),
                error=None,
                is_loading=False,
                progress_message=None,
            )
            result = PipelineResult(records=list(records or []))

        # Pas d'état terminal conservé entre deux exécutions.
        self._set(state=RunState.IDLE)
        return result
