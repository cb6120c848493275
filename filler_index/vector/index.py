"""
Index lifecycle manager.
Builds a faiss index from embedded corpus entries, persists it as a
self-describing file and reloads it in another process.
"""

import hashlib
import json
import os
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from util.logging import logger
from ..core.codec import FILLER_MODULUS
from ..core.errors import (
    CapacityExceededError,
    IndexCorruptError,
    IndexLifecycleError,
    IndexNotFoundError,
    IndexNotLoadedError,
)

MAGIC = b"FILLER_INDEX_V1\n"
FORMAT_VERSION = 1
METRIC = "l2"
INDEX_TYPES = ("hnsw", "flat")

_HEADER_FIELDS = (
    "format_version", "dimension", "capacity", "metric", "index_type",
    "count", "codec_modulus", "blob_size", "checksum",
)


class FillerIndex:
    """A faiss index keyed by compound IDs, with the settings it was built for."""

    def __init__(self, index, dimension: int, capacity: int, index_type: str,
                 embedding_model: Optional[str] = None):
        self.index = index
        self.dimension = dimension
        self.capacity = capacity
        self.index_type = index_type
        self.metric = METRIC
        self.embedding_model = embedding_model
        # Set only once construction or loading has fully succeeded
        self.ready = False

    @property
    def ntotal(self) -> int:
        return int(self.index.ntotal)

    def search(self, vector, k: int) -> List[Tuple[int, float]]:
        """
        Find up to k nearest entries to a vector.

        Args:
            vector: Query vector of the index dimension
            k: Maximum number of neighbors; fewer are returned if the index is smaller

        Returns:
            (compound_id, squared L2 distance) pairs, nearest first
        """
        if not self.ready:
            raise IndexNotLoadedError("Index is not ready for search")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        query = np.ascontiguousarray(np.asarray(vector, dtype=np.float32).reshape(1, -1))
        if query.shape[1] != self.dimension:
            raise ValueError(
                f"Query dimension {query.shape[1]} does not match index dimension {self.dimension}"
            )

        if not self.ntotal:
            return []

        distances, labels = self.index.search(query, min(k, self.ntotal))

        # HNSW may leave unfilled slots labelled -1
        return [
            (int(label), float(distance))
            for label, distance in zip(labels[0], distances[0])
            if label != -1
        ]

    def describe(self) -> Dict[str, Any]:
        return {
            "dimension": self.dimension,
            "capacity": self.capacity,
            "metric": self.metric,
            "index_type": self.index_type,
            "count": self.ntotal,
            "embedding_model": self.embedding_model,
        }


class IndexLifecycleManager:
    """Owns construction, persistence and reload of FillerIndex instances."""

    def __init__(self, index_type: str = "hnsw", hnsw_m: int = 16,
                 ef_construction: int = 200, ef_search: int = 50):
        if index_type not in INDEX_TYPES:
            raise ValueError(f"Unknown index type: {index_type}")
        self.index_type = index_type
        self.hnsw_m = hnsw_m
        self.ef_construction = ef_construction
        self.ef_search = ef_search

    def _create(self, dimension: int):
        if self.index_type == "flat":
            base = faiss.IndexFlatL2(dimension)
        else:
            base = faiss.IndexHNSWFlat(dimension, self.hnsw_m)
            base.hnsw.efConstruction = self.ef_construction
            base.hnsw.efSearch = self.ef_search
        # IDMap lets every entry carry its compound ID as the faiss label
        return faiss.IndexIDMap(base)

    def _apply_search_params(self, index) -> None:
        base = faiss.downcast_index(index.index)
        if isinstance(base, faiss.IndexHNSW):
            base.hnsw.efSearch = self.ef_search

    def build(self, dimension: int, capacity: int, embeddings, ids: Sequence[int],
              embedding_model: Optional[str] = None) -> FillerIndex:
        """
        Create a new index and insert every (embedding, id) pair in input order.

        Args:
            dimension: Vector width the index accepts
            capacity: Maximum number of entries the index may hold
            embeddings: One vector per entry, shape (n, dimension)
            ids: Compound ID per entry, aligned with embeddings
            embedding_model: Name of the model that produced the embeddings

        Returns:
            A ready FillerIndex holding exactly the given entries

        Raises:
            CapacityExceededError: If more than capacity entries are given
            ValueError: If lengths, dimensions or ids are inconsistent
        """
        if dimension < 1 or capacity < 1:
            raise ValueError(f"dimension and capacity must be >= 1, got {dimension} and {capacity}")
        if len(embeddings) != len(ids):
            raise ValueError(f"Got {len(embeddings)} embeddings for {len(ids)} ids")
        if len(ids) > capacity:
            raise CapacityExceededError(
                f"{len(ids)} entries exceed index capacity of {capacity}"
            )

        label_array = np.asarray(ids, dtype=np.int64)
        if len(set(label_array.tolist())) != len(label_array):
            raise ValueError("Compound ids must be unique")
        if len(label_array) and label_array.min() < 0:
            raise ValueError("Compound ids must be non-negative")

        if len(ids):
            vectors = np.ascontiguousarray(np.asarray(embeddings, dtype=np.float32))
            if vectors.ndim != 2 or vectors.shape[1] != dimension:
                raise ValueError(
                    f"Embeddings of shape {vectors.shape} do not match dimension {dimension}"
                )
        else:
            vectors = np.zeros((0, dimension), dtype=np.float32)

        start = time.perf_counter()
        index = FillerIndex(self._create(dimension), dimension, capacity,
                            self.index_type, embedding_model)
        try:
            for i in range(len(label_array)):
                index.index.add_with_ids(vectors[i:i + 1], label_array[i:i + 1])
        except Exception as e:
            logger.log_stage_timing("build", start, time.perf_counter(), status="failed",
                                    details={"inserted": index.ntotal, "error": str(e)})
            raise

        index.ready = True
        logger.log_stage_timing("build", start, time.perf_counter(), details=index.describe())
        return index

    def persist(self, index: FillerIndex, destination: str) -> Dict[str, Any]:
        """
        Write an index to destination, replacing any previous file atomically.

        The file holds a magic line, a JSON header describing the index and
        the faiss serialization. It is written to a temporary file in the same
        directory, fsynced and renamed over the destination.

        Returns:
            The header that was written
        """
        if not index.ready:
            raise IndexLifecycleError("Refusing to persist an index that is not ready")

        start = time.perf_counter()
        blob = faiss.serialize_index(index.index).tobytes()
        header = {
            "format_version": FORMAT_VERSION,
            "dimension": index.dimension,
            "capacity": index.capacity,
            "metric": index.metric,
            "index_type": index.index_type,
            "count": index.ntotal,
            "codec_modulus": FILLER_MODULUS,
            "embedding_model": index.embedding_model,
            "created_at": datetime.now().isoformat(),
            "blob_size": len(blob),
            "checksum": hashlib.sha256(blob).hexdigest(),
        }

        dest = Path(destination)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
        except OSError as e:
            raise IndexLifecycleError(f"Failed to prepare {destination} for writing: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(MAGIC)
                f.write(json.dumps(header, sort_keys=True).encode('utf-8') + b"\n")
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, dest)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise IndexLifecycleError(f"Failed to persist index to {destination}: {e}") from e

        logger.log_stage_timing("persist", start, time.perf_counter(), details={
            "path": str(dest),
            "count": header["count"],
            "bytes": len(blob),
        })
        return header

    def _read_header(self, data: bytes, source: str) -> Tuple[Dict[str, Any], bytes]:
        if not data.startswith(MAGIC):
            raise IndexCorruptError(f"{source} is not a filler index file")

        header_end = data.find(b"\n", len(MAGIC))
        if header_end == -1:
            raise IndexCorruptError(f"{source} has a truncated header")

        try:
            header = json.loads(data[len(MAGIC):header_end].decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise IndexCorruptError(f"{source} has an unreadable header: {e}") from e

        if not isinstance(header, dict):
            raise IndexCorruptError(f"{source} header is not an object")
        missing = [name for name in _HEADER_FIELDS if name not in header]
        if missing:
            raise IndexCorruptError(f"{source} header is missing {', '.join(missing)}")

        return header, data[header_end + 1:]

    def _check_header(self, header: Dict[str, Any], blob: bytes, source: str) -> None:
        if header["format_version"] != FORMAT_VERSION:
            raise IndexCorruptError(f"{source} has unsupported format version {header['format_version']}")
        if header["metric"] != METRIC:
            raise IndexCorruptError(f"{source} uses metric {header['metric']!r}, expected {METRIC!r}")
        if header["codec_modulus"] != FILLER_MODULUS:
            raise IndexCorruptError(
                f"{source} was built with codec modulus {header['codec_modulus']}, expected {FILLER_MODULUS}"
            )
        if header["index_type"] not in INDEX_TYPES:
            raise IndexCorruptError(f"{source} has unknown index type {header['index_type']!r}")

        for name in ("dimension", "capacity", "count", "blob_size"):
            value = header[name]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise IndexCorruptError(f"{source} header field {name} is invalid: {value!r}")
        if header["dimension"] < 1 or header["capacity"] < 1:
            raise IndexCorruptError(f"{source} declares an empty dimension or capacity")
        if header["count"] > header["capacity"]:
            raise IndexCorruptError(
                f"{source} declares {header['count']} entries over capacity {header['capacity']}"
            )

        if len(blob) != header["blob_size"]:
            raise IndexCorruptError(
                f"{source} holds {len(blob)} index bytes, header declares {header['blob_size']}"
            )
        if hashlib.sha256(blob).hexdigest() != header["checksum"]:
            raise IndexCorruptError(f"{source} failed checksum verification")

    def load(self, source: str) -> FillerIndex:
        """
        Load a persisted index, verifying it against its own header.

        Raises:
            IndexNotFoundError: If source does not exist
            IndexCorruptError: If any consistency check fails
        """
        start = time.perf_counter()
        try:
            data = Path(source).read_bytes()
        except FileNotFoundError as e:
            raise IndexNotFoundError(f"Index file not found: {source}") from e
        except OSError as e:
            raise IndexLifecycleError(f"Failed to read index {source}: {e}") from e

        header, blob = self._read_header(data, source)
        self._check_header(header, blob, source)

        try:
            raw = faiss.deserialize_index(np.frombuffer(blob, dtype=np.uint8))
        except RuntimeError as e:
            raise IndexCorruptError(f"{source} could not be deserialized: {e}") from e

        if raw.d != header["dimension"]:
            raise IndexCorruptError(
                f"{source} stores dimension {raw.d}, header declares {header['dimension']}"
            )
        if raw.ntotal != header["count"]:
            raise IndexCorruptError(
                f"{source} stores {raw.ntotal} vectors, header declares {header['count']}"
            )
        if raw.metric_type != faiss.METRIC_L2:
            raise IndexCorruptError(f"{source} stores a non-L2 index")
        if not isinstance(raw, faiss.IndexIDMap):
            raise IndexCorruptError(f"{source} does not store compound ids")

        self._apply_search_params(raw)
        index = FillerIndex(raw, header["dimension"], header["capacity"],
                            header["index_type"], header.get("embedding_model"))
        index.ready = True

        logger.log_stage_timing("load", start, time.perf_counter(), details={
            "path": str(source),
            "count": index.ntotal,
        })
        return index
