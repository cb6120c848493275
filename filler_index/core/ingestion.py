"""
Corpus ingestion.
Reads unprocessed record files, flattens their records into one sequence and
moves each file to the processed location once it has been folded in.
"""

import json
import os
import time
from pathlib import Path
from typing import Any, List

from util.logging import logger

from . import codec
from .errors import EncodingOverflowError, EncodingRangeError, IngestionError
from ..vector.types import CorpusRecord, IngestionResult, SequencedEntry

# Older corpus files carry the category under this key
LEGACY_CATEGORY_KEY = "fillerID"


def list_record_files(source_dir: str, record_extension: str) -> List[str]:
    """
    Return the names of files in source_dir whose extension matches.

    Order is whatever the filesystem enumerates; callers must not rely on it.
    """
    suffix = "." + record_extension.lstrip(".").lower()
    try:
        names = os.listdir(source_dir)
    except FileNotFoundError as e:
        raise IngestionError(f"Source directory does not exist: {source_dir}") from e
    except OSError as e:
        raise IngestionError(f"Failed to list source directory {source_dir}: {e}") from e

    return [
        name for name in names
        if os.path.splitext(name)[1].lower() == suffix
        and os.path.isfile(os.path.join(source_dir, name))
    ]


def _parse_record(raw: Any, position: int) -> CorpusRecord:
    if not isinstance(raw, dict):
        raise ValueError(f"record {position} is not an object")

    page_content = raw.get("pageContent")
    if not isinstance(page_content, str):
        raise ValueError(f"record {position} is missing string 'pageContent'")

    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        raise ValueError(f"record {position} is missing 'metadata'")

    category = metadata.get("fillerCategory", metadata.get(LEGACY_CATEGORY_KEY))
    if category is None:
        raise ValueError(f"record {position} is missing 'metadata.fillerCategory'")
    if isinstance(category, bool) or not isinstance(category, int):
        raise ValueError(f"record {position} has non-integer filler category {category!r}")

    return CorpusRecord(page_content=page_content, filler_category=category)


def parse_records(content: str) -> List[CorpusRecord]:
    """
    Parse the text of one source file into corpus records.

    Args:
        content: JSON array of {"pageContent": str, "metadata": {"fillerCategory": int}}

    Returns:
        Records in file order

    Raises:
        ValueError: If the text is not a JSON array of well-formed records
    """
    raw = json.loads(content)
    if not isinstance(raw, list):
        raise ValueError("file content is not a JSON array")
    return [_parse_record(item, i) for i, item in enumerate(raw)]


def _processed_destination(processed_dir: str, file_name: str) -> str:
    """Path in processed_dir for file_name that does not replace an earlier batch."""
    destination = os.path.join(processed_dir, file_name)
    stem, suffix = os.path.splitext(file_name)
    counter = 1
    while os.path.exists(destination):
        destination = os.path.join(processed_dir, f"{stem}.{counter}{suffix}")
        counter += 1
    return destination


def restore_processed(result: IngestionResult, source_dir: str) -> None:
    """
    Move the files of an ingestion run back to source_dir.

    Used when a later stage of the run fails, so the next run folds the same
    records in again. A file whose source name has been taken since is left
    in the processed location and reported.

    Raises:
        IngestionError: If any file could not be moved back
    """
    failures = []
    for file_name, processed_path in zip(result.files, result.processed_paths):
        target = os.path.join(source_dir, file_name)
        if os.path.exists(target):
            failures.append((file_name, f"{target} already exists"))
            continue
        try:
            os.replace(processed_path, target)
        except OSError as e:
            failures.append((file_name, str(e)))
            continue
        logger.log_operation("restore_file", "success", {"file": file_name})

    if failures:
        names = ", ".join(name for name, _ in failures)
        raise IngestionError(
            f"Failed to restore {len(failures)} file(s) to {source_dir}: {names}",
            failures=failures,
        )


def ingest(source_dir: str, record_extension: str, processed_dir: str) -> IngestionResult:
    """
    Fold every unprocessed record file into one flattened, sequenced corpus.

    Each file is read, parsed and encoded in full before any of its records
    join the corpus; only then is it renamed into processed_dir. A file that
    fails at any step stays in source_dir. Well-formed files met in the same
    run are still folded in and moved, and the run then raises.

    Args:
        source_dir: Directory holding unprocessed record files
        record_extension: File extension to match, with or without the dot
        processed_dir: Directory files are moved to once folded in

    Returns:
        IngestionResult whose ids[i] encodes (i, category of entry i)

    Raises:
        IngestionError: If any file was malformed or a filesystem step failed
    """
    start = time.perf_counter()
    file_names = list_record_files(source_dir, record_extension)

    try:
        Path(processed_dir).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IngestionError(f"Failed to create processed directory {processed_dir}: {e}") from e

    result = IngestionResult()
    failures = []

    for file_name in file_names:
        file_path = os.path.join(source_dir, file_name)
        offset = len(result.entries)

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                records = parse_records(f.read())
            ids = [
                codec.encode(offset + i, record.filler_category)
                for i, record in enumerate(records)
            ]
        except (OSError, UnicodeDecodeError, ValueError, TypeError,
                EncodingRangeError, EncodingOverflowError) as e:
            failures.append((file_name, str(e)))
            logger.log_ingestion_file(file_name, 0, status="failed", reason=str(e))
            continue

        for i, (record, compound_id) in enumerate(zip(records, ids)):
            result.entries.append(SequencedEntry(
                sequence_position=offset + i,
                content=record.page_content,
                filler_category=record.filler_category,
            ))
            result.contents.append(record.page_content)
            result.ids.append(compound_id)

        # Same-filesystem rename: the file is either still in source or fully processed
        destination = _processed_destination(processed_dir, file_name)
        try:
            os.replace(file_path, destination)
        except OSError as e:
            raise IngestionError(
                f"Failed to move {file_name} to {processed_dir}: {e}",
                failures=failures + [(file_name, str(e))],
            ) from e

        result.files.append(file_name)
        result.processed_paths.append(destination)
        logger.log_ingestion_file(file_name, len(records))

    logger.log_stage_timing("ingest", start, time.perf_counter(), details={
        "files": len(result.files),
        "records": len(result.entries),
        "failed_files": len(failures),
    })

    if failures:
        names = ", ".join(name for name, _ in failures)
        raise IngestionError(
            f"Ingestion aborted: {len(failures)} malformed file(s) left in {source_dir}: {names}",
            failures=failures,
        )

    return result
