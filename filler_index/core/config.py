"""
Configuration for the filler retrieval pipeline.
Values come from environment variables (optionally via a .env file).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Corpus locations
SOURCE_DIR = os.getenv("FILLER_SOURCE_DIR", "./data/to_process")
PROCESSED_DIR = os.getenv("FILLER_PROCESSED_DIR", "./data/processed")
RECORD_EXTENSION = os.getenv("FILLER_RECORD_EXTENSION", "json")

# Persisted index and filler table
INDEX_PATH = os.getenv("FILLER_INDEX_PATH", "./data/index.faiss")
FILLER_TABLE_PATH = os.getenv("FILLER_TABLE_PATH", "./data/filler_map.json")

# Embedding configuration
EMBED_PROVIDER = os.getenv("FILLER_EMBED_PROVIDER", "sentence_transformers")  # sentence_transformers|hash
EMBED_MODEL_NAME = os.getenv("FILLER_EMBED_MODEL", "distiluse-base-multilingual-cased-v2")
EMBED_BATCH_SIZE = int(os.getenv("FILLER_EMBED_BATCH_SIZE", "32"))
EMBED_DIM = int(os.getenv("FILLER_EMBED_DIM", "512"))

# Index configuration
INDEX_CAPACITY = int(os.getenv("FILLER_INDEX_CAPACITY", "10000"))
INDEX_TYPE = os.getenv("FILLER_INDEX_TYPE", "hnsw")  # hnsw|flat
HNSW_M = int(os.getenv("FILLER_HNSW_M", "16"))
HNSW_EF_CONSTRUCTION = int(os.getenv("FILLER_HNSW_EF_CONSTRUCTION", "200"))
HNSW_EF_SEARCH = int(os.getenv("FILLER_HNSW_EF_SEARCH", "50"))

# Query configuration
TOP_K = int(os.getenv("FILLER_TOP_K", "3"))

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

VERSION = "0.1.0"

EMBED_PROVIDERS = ["sentence_transformers", "hash"]
INDEX_TYPES = ["hnsw", "flat"]


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_embedding_provider(provider: str = None, model_name: str = None, dimension: int = None):
    """Get the configured embedding provider implementation."""
    from ..vector.embeddings import DeterministicHashEmbedding, SentenceTransformerEmbedding

    provider = provider or EMBED_PROVIDER
    if provider == "hash":
        return DeterministicHashEmbedding(dimension=dimension or EMBED_DIM)
    if provider == "sentence_transformers":
        return SentenceTransformerEmbedding(model_name or EMBED_MODEL_NAME, batch_size=EMBED_BATCH_SIZE)
    raise ValueError(f"Unknown embedding provider: {provider}")


def get_index_manager():
    """Get an index lifecycle manager configured from the environment."""
    from ..vector.index import IndexLifecycleManager

    return IndexLifecycleManager(
        index_type=INDEX_TYPE,
        hnsw_m=HNSW_M,
        ef_construction=HNSW_EF_CONSTRUCTION,
        ef_search=HNSW_EF_SEARCH,
    )


def ensure_data_directories():
    """Ensure the processed directory and the index directory exist."""
    Path(PROCESSED_DIR).mkdir(parents=True, exist_ok=True)
    Path(INDEX_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate pipeline configuration and return any issues."""
    issues = []

    if EMBED_PROVIDER not in EMBED_PROVIDERS:
        issues.append(f"Invalid FILLER_EMBED_PROVIDER: {EMBED_PROVIDER}")

    if INDEX_TYPE not in INDEX_TYPES:
        issues.append(f"Invalid FILLER_INDEX_TYPE: {INDEX_TYPE}")

    if EMBED_DIM < 1:
        issues.append("FILLER_EMBED_DIM must be >= 1")

    if INDEX_CAPACITY < 1:
        issues.append("FILLER_INDEX_CAPACITY must be >= 1")

    if EMBED_BATCH_SIZE < 1:
        issues.append("FILLER_EMBED_BATCH_SIZE must be >= 1")

    if TOP_K < 1:
        issues.append("FILLER_TOP_K must be >= 1")

    if HNSW_M < 2:
        issues.append("FILLER_HNSW_M must be >= 2")

    if HNSW_EF_SEARCH < 1 or HNSW_EF_CONSTRUCTION < 1:
        issues.append("FILLER_HNSW_EF_SEARCH and FILLER_HNSW_EF_CONSTRUCTION must be >= 1")

    return issues
