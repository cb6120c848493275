#!/usr/bin/env python3
"""
Ingestion run.
Folds new record files into a corpus, embeds it, builds a faiss index and
persists it for the query service.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from filler_index.core import config
from filler_index.core.config import get_embedding_provider, get_index_manager, validate_config
from filler_index.core.errors import FillerIndexError, IngestionError
from filler_index.core.pipeline import run_ingestion
from filler_index.vector.embeddings import EmbeddingsService
from util.logging import logger


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Ingest filler corpus files and persist a fresh index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # Use configured directories
  %(prog)s --source ./data/to_process --index ./data/index.faiss
  %(prog)s --embed-provider hash             # Offline smoke run, no model download

Record files are JSON arrays of {"pageContent": ..., "metadata": {"fillerCategory": N}}.
Each file is moved to the processed directory once folded in.
        """
    )
    parser.add_argument("--source", default=config.SOURCE_DIR, help="Directory of unprocessed record files")
    parser.add_argument("--processed", default=config.PROCESSED_DIR, help="Directory processed files are moved to")
    parser.add_argument("--extension", default=config.RECORD_EXTENSION, help="Record file extension")
    parser.add_argument("--index", default=config.INDEX_PATH, help="Where to persist the built index")
    parser.add_argument("--dimension", type=int, default=config.EMBED_DIM, help="Embedding dimension")
    parser.add_argument("--capacity", type=int, default=config.INDEX_CAPACITY, help="Maximum number of indexed entries")
    parser.add_argument("--embed-provider", default=config.EMBED_PROVIDER,
                        choices=config.EMBED_PROVIDERS, help="Embedding provider")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug detail")
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    logger.set_debug(args.verbose or config.debug_enabled())

    print(f"Ingesting {args.extension} records from {args.source} ...")
    try:
        embeddings_service = EmbeddingsService(
            get_embedding_provider(args.embed_provider, dimension=args.dimension)
        )
        summary = run_ingestion(
            embeddings_service,
            get_index_manager(),
            source_dir=args.source,
            processed_dir=args.processed,
            record_extension=args.extension,
            index_path=args.index,
            dimension=args.dimension,
            capacity=args.capacity,
        )
    except IngestionError as e:
        print(f"ERROR: {e}")
        for file_name, reason in e.failures:
            print(f"  {file_name}: {reason}")
        sys.exit(1)
    except FillerIndexError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if not summary.persisted:
        print("No records found. Existing index left unchanged.")
        return summary

    print(f"✓ Folded {summary.files} files into {summary.entries} entries")
    print(f"✓ Index saved to: {summary.index_path} ({summary.duration_ms}ms)")
    return summary


if __name__ == "__main__":
    main()
