#!/usr/bin/env python3
"""
Query run.
Loads the persisted index and prints the fillers matched for each utterance.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from filler_index.core import config
from filler_index.core.config import get_embedding_provider, get_index_manager, validate_config
from filler_index.core.errors import FillerIndexError
from filler_index.core.pipeline import init_query_service
from filler_index.vector.embeddings import EmbeddingsService
from util.logging import logger


def main(argv=None):
    parser = argparse.ArgumentParser(description="Match utterances to fillers using the persisted index")
    parser.add_argument("text", nargs="+", help="Utterance(s) to match")
    parser.add_argument("-k", type=int, default=config.TOP_K, help="Number of nearest neighbors")
    parser.add_argument("--index", default=config.INDEX_PATH, help="Persisted index location")
    parser.add_argument("--fillers", default=config.FILLER_TABLE_PATH, help="Filler table JSON file")
    parser.add_argument("--dimension", type=int, default=config.EMBED_DIM, help="Embedding dimension (hash provider)")
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

    matches = []
    try:
        service = init_query_service(
            embeddings_service=EmbeddingsService(
                get_embedding_provider(args.embed_provider, dimension=args.dimension)
            ),
            manager=get_index_manager(),
            index_path=args.index,
            filler_table_path=args.fillers,
        )
        for text in args.text:
            matches.append(service.resolve(text, args.k))
    except (FillerIndexError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    for text, result in zip(args.text, matches):
        print(f"Query: {text}")
        for rank, (neighbor, distance, filler) in enumerate(
                zip(result.neighbors, result.distances, result.fillers), start=1):
            print(f"  [{rank}] {filler} (id {neighbor}, distance {distance:.4f})")
        timings = ", ".join(f"{stage} {ms}ms" for stage, ms in result.timings_ms.items())
        print(f"  took {timings}")

    return matches


if __name__ == "__main__":
    main()
