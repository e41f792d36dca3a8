"""Pipeline package: PDF/Images → images de pages → extraction structurée → CSV.

This package provides:
- Configuration loading utilities
- Typed structures for input files, image parts, progress events and student records
- A page rasterizer (pdf2image) and a batch collector preserving file/page order
- An extraction client around the Azure OpenAI vision model, with error classification
- A state-machine orchestrator publishing progress to subscribers
- CSV export and per-run storage helpers
- A CLI to process files or folders in batch mode
"""

__all__ = [
    "config",
    "errors",
    "types",
    "files",
    "raster_service",
    "collector",
    "extraction_service",
    "orchestrator",
    "writer",
    "storage",
]
