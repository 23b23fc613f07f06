"""
File-backed balance history.

The whole history is held in memory and rewritten to a single JSON file
on every mutation. The in-memory copy is authoritative for the life of
the process; a failed write is logged and otherwise ignored.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from balance_tracker.models import BalanceRecord


logger = logging.getLogger(__name__)


def _sorted_unique(records: Sequence[BalanceRecord]) -> list[BalanceRecord]:
    """Drop later duplicates of a timestamp, then sort ascending by instant."""
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.timestamp in seen:
            continue
        seen.add(record.timestamp)
        unique.append(record)
    return sorted(unique, key=lambda r: r.instant)


@dataclass
class HistoryQuery:
    """Result of a history query.

    ``start``/``end`` describe the whole store, not the filtered slice.
    """

    records: list[BalanceRecord] = field(default_factory=list)
    total_count: int = 0
    start: Optional[str] = None
    end: Optional[str] = None

    @property
    def filtered_count(self) -> int:
        return len(self.records)

    def to_dict(self) -> dict:
        return {
            "data": [r.to_dict() for r in self.records],
            "totalCount": self.total_count,
            "filteredCount": self.filtered_count,
            "dateRange": {"start": self.start, "end": self.end},
        }


class BalanceHistoryStore:
    """
    Ordered, timestamp-unique collection of BalanceRecord persisted as JSON.

    Invariant: at most one record per timestamp, ascending by instant.
    All mutations hold a lock so concurrent writers cannot interleave.
    """

    def __init__(self, file_path: str = "data/balance_history.json"):
        """
        Initialize the store and load any persisted history.

        Args:
            file_path: Path to the JSON history file
        """
        self.file_path = file_path
        self._lock = threading.RLock()
        self._records: list[BalanceRecord] = self.load()

    @property
    def records(self) -> list[BalanceRecord]:
        with self._lock:
            return list(self._records)

    @property
    def count(self) -> int:
        return len(self._records)

    def date_range(self) -> tuple[Optional[str], Optional[str]]:
        with self._lock:
            if not self._records:
                return None, None
            return self._records[0].timestamp, self._records[-1].timestamp

    def load(self) -> list[BalanceRecord]:
        """
        Read the persisted history.

        Returns:
            Records in ascending order, or an empty list if the file is
            missing or unreadable
        """
        if not os.path.exists(self.file_path):
            return []

        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load balance history from {self.file_path}: {e}")
            return []

        if not isinstance(raw, list):
            logger.warning(f"Balance history in {self.file_path} is not a list, ignoring it")
            return []

        records = []
        for item in raw:
            try:
                records.append(BalanceRecord.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed balance record: {e}")
        return _sorted_unique(records)

    def upsert(self, record: BalanceRecord) -> int:
        """
        Insert a record, replacing any record with the same timestamp.

        Returns:
            Total record count after the write
        """
        with self._lock:
            for i, existing in enumerate(self._records):
                if existing.timestamp == record.timestamp:
                    self._records[i] = record
                    break
            else:
                self._records.append(record)
            self._records.sort(key=lambda r: r.instant)
            self.persist(self._records)
            return len(self._records)

    def replace(self, records: Sequence[BalanceRecord]) -> int:
        """
        Swap the whole history for ``records`` (deduplicated and sorted).

        Returns:
            Total record count after the write
        """
        with self._lock:
            self._records = _sorted_unique(records)
            self.persist(self._records)
            return len(self._records)

    def query(self, after: Optional[datetime] = None, limit: Optional[int] = None) -> HistoryQuery:
        """
        Filter the history.

        Args:
            after: Keep records at or after this aware instant
            limit: If positive, keep only the most recent ``limit`` records

        Returns:
            HistoryQuery with the matching records in ascending order
        """
        with self._lock:
            filtered = self._records
            if after is not None:
                filtered = [r for r in filtered if r.instant >= after]
            if limit is not None and limit > 0:
                filtered = filtered[-limit:]
            start, end = self.date_range()
            return HistoryQuery(
                records=list(filtered),
                total_count=len(self._records),
                start=start,
                end=end,
            )

    def reset(self) -> None:
        """Delete every record and persist the empty history."""
        with self._lock:
            self._records = []
            self.persist(self._records)
        logger.info("Balance history reset")

    def persist(self, records: Sequence[BalanceRecord]) -> bool:
        """
        Write ``records`` to disk via a temp file and rename.

        Returns:
            True on success, False if the write failed (logged, not raised)
        """
        dir_path = os.path.dirname(self.file_path) or "."
        tmp_path = None
        try:
            os.makedirs(dir_path, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=dir_path, prefix=".balance_history.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump([r.to_dict() for r in records], f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.file_path)
            return True
        except OSError as e:
            logger.error(f"Failed to save balance history to {self.file_path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
            return False

    def summary(self) -> dict:
        start, end = self.date_range()
        return {
            "totalRecords": self.count,
            "dateRange": {"start": start, "end": end},
        }
