"""
Vector layer: embedding gateway, faiss index lifecycle and query orchestration.
"""

# Package initialization for vector module
from .types import CorpusRecord, SequencedEntry, IngestionResult, SearchResult
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding, EmbeddingsService
from .index import FillerIndex, IndexLifecycleManager
from .query import IndexHandle, QueryOrchestrator

__all__ = [
    'CorpusRecord',
    'SequencedEntry',
    'IngestionResult',
    'SearchResult',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'EmbeddingsService',
    'FillerIndex',
    'IndexLifecycleManager',
    'IndexHandle',
    'QueryOrchestrator'
]
