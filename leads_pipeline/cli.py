import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List

from dotenv import find_dotenv, load_dotenv

from .config import load_config
from .files import filter_accepted, find_documents, load_input_file
from .orchestrator import PipelineOrchestrator
from .storage import ensure_run_dir, write_run_report
from .types import InputFile, PipelineSnapshot
from .writer import records_to_csv, write_csv

logger = logging.getLogger(__name__)


def collect_inputs(paths: List[str]) -> List[InputFile]:
    """
    Charge les fichiers passés en argument; un dossier est parcouru récursivement.
    Les fichiers ni PDF ni image sont écartés avant le lancement du pipeline.
    """
    files: List[InputFile] = []
    for raw in paths:
        p = Path(raw).expanduser()
        if p.is_dir():
            files.extend(load_input_file(str(doc)) for doc in find_documents(str(p)))
        elif p.is_file():
            files.append(load_input_file(str(p)))
        else:
            logger.warning("Chemin introuvable ignoré: %s", raw)
    return filter_accepted(files)


def _print_progress(snap: PipelineSnapshot) -> None:
    if snap.progress_message:
        print(f"… {snap.progress_message}", file=sys.stderr)


def main() -> None:
    # Charger .env avant toute lecture d'os.getenv (config/services)
    load_dotenv(find_dotenv(usecwd=True), override=False)

    parser = argparse.ArgumentParser(
        description="Pipeline: PDF/Images → extraction des candidatures HSU (modèle vision) → CSV."
    )
    parser.add_argument("inputs", nargs="*", help="Fichiers PDF/images ou dossiers à traiter (dans l'ordre).")
    parser.add_argument("--out-root", required=False, help="Dossier racine de sortie (défaut: exports)")
    parser.add_argument("--model", required=False, help="Déploiement Azure OpenAI (défaut via env AZURE_OPENAI_DEPLOYMENT)")
    parser.add_argument("--scale", required=False, type=float, default=None, help="Facteur de rendu PDF (défaut 1.5)")
    parser.add_argument("--quality", required=False, type=float, default=None, help="Qualité JPEG ]0, 1] (défaut 0.9)")
    parser.add_argument("--stdout", action="store_true", help="Affiche aussi le CSV sur la sortie standard (copier/coller)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Logs détaillés")
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else os.getenv("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s - %(message)s")

    try:
        cfg = load_config(
            out_root=args.out_root,
            deployment=args.model,
            render_scale=args.scale,
            jpeg_quality=args.quality,
        )
    except ValueError as e:
        print(f"Erreur de configuration: {e}", file=sys.stderr)
        sys.exit(1)

    files = collect_inputs(args.inputs)
    print(f"{len(files)} fichier(s) (PDF/images) retenu(s) → sortie: {cfg.out_root}", file=sys.stderr)

    orchestrator = PipelineOrchestrator.from_config(cfg)
    orchestrator.subscribe(_print_progress)

    try:
        result = asyncio.run(orchestrator.run(files))
    except KeyboardInterrupt:
        print("Interrompu par l'utilisateur.", file=sys.stderr)
        sys.exit(130)

    if not files:
        # Rien à archiver: message seul.
        print(f"❌ {result.error}", file=sys.stderr)
        sys.exit(1)

    run_dir = ensure_run_dir(cfg.out_root)
    inputs = [f.name for f in files]

    if not result.ok:
        write_run_report(run_dir, inputs, result)
        print(f"❌ Échec: {result.error}", file=sys.stderr)
        sys.exit(1)

    csv_path = write_csv(run_dir, result.records, cfg.csv_filename)
    write_run_report(run_dir, inputs, result, csv_path=csv_path)
    print(f"✅ {len(result.records)} enregistrement(s) extrait(s) → {csv_path}", file=sys.stderr)
    if args.stdout:
        sys.stdout.write(records_to_csv(result.records) + "\n")


if __name__ == "__main__":
    main()
