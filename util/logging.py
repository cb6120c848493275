"""
Structured logging for ingestion, index lifecycle and query operations.
"""

import logging
from typing import Any, Dict


def _truncate(text: str, limit: int = 50) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class StructuredLogger:
    """Structured logger for pipeline stages and their timings."""

    def __init__(self, name: str = "filler_index"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def set_debug(self, enabled: bool) -> None:
        """Switch between INFO and DEBUG verbosity."""
        self.logger.setLevel(logging.DEBUG if enabled else logging.INFO)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status == "failed":
            self.logger.error(message)
        else:
            self.logger.info(message)

    def log_stage_timing(self, stage: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None) -> float:
        """Log how long a pipeline stage took and return the duration in ms."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Stage '{stage}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Stage '{stage}' failed after {duration_ms}ms"

        self.log_operation(f"stage.{stage}", status, log_details)
        return duration_ms

    def log_ingestion_file(self, file_name: str, records: int, status: str = "success", reason: str = None):
        """Log the outcome of ingesting one source file."""
        details = {"file": file_name, "records": records}
        if reason is not None:
            details["reason"] = _truncate(reason, 100)

        self.log_operation("ingestion.file", status, details)

    def log_index_operation(self, operation: str, path: str = None, details: Dict[str, Any] = None, status: str = "success"):
        """Log an index build, persist or load."""
        log_details = {}
        if path is not None:
            log_details["path"] = path
        if details:
            log_details.update(details)

        self.log_operation(f"index.{operation}", status, log_details)

    def log_query(self, query_text: str, neighbors: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a resolved query."""
        log_details = {"query": _truncate(query_text), "neighbors": neighbors}
        if details:
            log_details.update(details)

        self.log_operation("query.resolve", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
