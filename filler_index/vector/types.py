"""
Record types shared by ingestion, index lifecycle and query stages.
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True)
class CorpusRecord:
    """One reference text as authored in a source file."""

    page_content: str
    """Text that gets embedded and indexed"""

    filler_category: int
    """Filler category the text should resolve to"""


@dataclass(frozen=True)
class SequencedEntry:
    """A corpus record placed at its position within one ingestion run."""

    sequence_position: int
    content: str
    filler_category: int


@dataclass
class IngestionResult:
    """Flattened corpus produced by one ingestion run."""

    contents: List[str] = field(default_factory=list)
    ids: List[int] = field(default_factory=list)
    entries: List[SequencedEntry] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    """Source files folded in and moved to the processed location"""

    processed_paths: List[str] = field(default_factory=list)
    """Where each of files now lives; a name already taken in the processed
    location gets a numbered suffix"""


@dataclass
class SearchResult:
    """Neighbors of a query, nearest first, with their resolved fillers."""

    neighbors: List[int]
    """Compound IDs of the nearest entries"""

    distances: List[float]
    """Squared L2 distance of each neighbor to the query"""

    fillers: List[str]
    """Filler text resolved for each neighbor"""

    timings_ms: Dict[str, float] = field(default_factory=dict, compare=False)
    """Wall-clock duration of each query stage"""
