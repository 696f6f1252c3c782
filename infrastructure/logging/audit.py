import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from gardenrig.utils.time import iso_now


class AuditLogger:
    """Structured audit logger that writes append-only records.

    One JSON object per line: which component (actor) did what (action) to
    which device (resource), and how it ended (outcome). Safety trips, pump
    runs and re-enables are audited so a flooded shelf can be reconstructed.
    """

    def __init__(self, log_path: str, level: str = "INFO", logger_name: str = "gardenrig.audit") -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.logger.propagate = False

        # Check if handler already exists to avoid duplicate handlers
        if not any(isinstance(handler, RotatingFileHandler) for handler in self.logger.handlers):
            handler = RotatingFileHandler(
                filename=str(self.log_path),
                maxBytes=5 * 1024 * 1024,  # 5 MB
                backupCount=10,
                encoding="utf-8",
                delay=True,
            )
            formatter = logging.Formatter(
                fmt="%(asctime)sZ | %(levelname)s | %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_event(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        payload: Dict[str, Any] = {
            "at": iso_now(timespec="seconds"),
            "actor": actor,
            "action": action,
            "resource": resource,
            "outcome": outcome,
        }
        if metadata:
            payload["meta"] = metadata

        self.logger.info(json.dumps(payload, default=str))

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)


class MemoryAuditLogger(AuditLogger):
    """Audit logger that keeps records in memory (development hosts, tests)."""

    def __init__(self) -> None:
        self.records: List[Dict[str, Any]] = []
        self.logger = logging.getLogger("gardenrig.audit.memory")

    def log_event(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        record: Dict[str, Any] = {"actor": actor, "action": action, "resource": resource, "outcome": outcome}
        if metadata:
            record["meta"] = metadata
        self.records.append(record)

    def find(self, action: str, outcome: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            r for r in self.records
            if r["action"] == action and (outcome is None or r["outcome"] == outcome)
        ]

    def close(self) -> None:
        self.records.clear()
