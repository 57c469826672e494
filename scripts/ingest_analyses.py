"""Ingest image-analysis JSON files into the campaign store.

Each file holds one campaign analysis (company, channel, offer, imagery, ...)
plus the `image_urls` of its uploaded images. Embeddings are generated with
the configured OpenAI embedding model.

Usage:
    python scripts/ingest_analyses.py                  # data/analyses/
    python scripts/ingest_analyses.py --dir <path>
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# Allow running as `python -m scripts.ingest_analyses` or `python scripts/ingest_analyses.py`
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adscope.config import settings  # noqa: E402
from adscope.ingest.pipeline import ingest_directory  # noqa: E402
from adscope.llm.embeddings import create_embedder  # noqa: E402
from adscope.storage.database import Database  # noqa: E402


async def _main(directory: Path) -> int:
    if not directory.exists():
        print(f"Error: analyses directory {directory} does not exist.")
        return 1

    db = Database(settings.db_path, dimensions=settings.embedding_dimensions)
    await db.connect()
    try:
        progress = None
        async for _campaign, progress in ingest_directory(db, create_embedder(settings), directory):
            print(f"[{progress.completed + progress.failed}/{progress.total}] {progress.current_file}")
    finally:
        await db.close()

    if progress is None:
        print(f"No analysis files found in {directory}.")
        return 0

    print(f"\nDone: {progress.completed} ingested, {progress.failed} failed")
    if progress.errors:
        print("Errors:")
        for err in progress.errors:
            print(f"  - {err}")
    return 1 if progress.failed else 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    directory = settings.analyses_dir

    args = sys.argv[1:]
    i = 0
    while i < len(args):
        if args[i] == "--dir" and i + 1 < len(args):
            directory = Path(args[i + 1])
            i += 2
        else:
            print(f"Unknown argument: {args[i]}")
            print("Usage: python scripts/ingest_analyses.py [--dir <path>]")
            sys.exit(1)

    sys.exit(asyncio.run(_main(directory)))
