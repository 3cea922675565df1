"""Durable log of sent notifications and the user's notification policy."""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog
from pydantic import ValidationError

from src.notifications.models import (
    NotificationKind,
    NotificationPolicy,
    NotificationRecord,
)
from src.utils.error_handler import ErrorHandler

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RECORDS = 1000

RecordMutation = Callable[[NotificationRecord], None]


class HistoryStoreError(Exception):
    """The history store could not be read or written"""


def mark_opened(record: NotificationRecord) -> None:
    record.was_opened = True


def mark_ignored(record: NotificationRecord) -> None:
    record.was_ignored = True


class NotificationHistoryStore(ABC):
    """Append-only notification log plus the stored policy.

    One store instance serves one user profile and serializes its writes,
    so a send racing with open/ignore feedback cannot lose either update.
    """

    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        self.max_records = max_records
        self._write_lock = asyncio.Lock()

    @abstractmethod
    async def _load_records(self) -> list[NotificationRecord]:
        """Return all records, oldest first"""

    @abstractmethod
    async def _save_records(self, records: list[NotificationRecord]) -> None:
        """Persist all records, oldest first"""

    @abstractmethod
    async def load_policy(self) -> NotificationPolicy | None:
        """Return the stored policy, or ``None`` if none was saved"""

    @abstractmethod
    async def _save_policy(self, policy: NotificationPolicy) -> None:
        """Persist the policy"""

    async def append(self, record: NotificationRecord) -> None:
        async with self._write_lock:
            records = await self._load_records()
            records.append(record)
            if len(records) > self.max_records:
                records = records[-self.max_records :]
            await self._save_records(records)
        logger.debug("Notification recorded", kind=record.kind.value)

    async def recent_records(self, since: datetime) -> list[NotificationRecord]:
        records = await self._load_records()
        return [record for record in records if record.sent_at >= since]

    async def update_latest(
        self, kind: NotificationKind, mutation: RecordMutation
    ) -> NotificationRecord | None:
        """Apply ``mutation`` to the newest unresolved record of ``kind``.

        Records that were already opened or ignored are left alone, so each
        record receives at most one feedback mutation.
        """
        async with self._write_lock:
            records = await self._load_records()
            for record in reversed(records):
                if record.kind == kind and not record.is_resolved:
                    mutation(record)
                    await self._save_records(records)
                    return record
        logger.debug("No unresolved notification to update", kind=kind.value)
        return None

    async def save_policy(self, policy: NotificationPolicy) -> None:
        async with self._write_lock:
            await self._save_policy(policy)
        logger.info("Notification policy saved", level=policy.level.value)


class InMemoryHistoryStore(NotificationHistoryStore):
    """History kept in process memory"""

    def __init__(
        self,
        records: list[NotificationRecord] | None = None,
        policy: NotificationPolicy | None = None,
        max_records: int = DEFAULT_MAX_RECORDS,
    ) -> None:
        super().__init__(max_records)
        self._records: list[NotificationRecord] = list(records or [])
        self._policy = policy

    async def _load_records(self) -> list[NotificationRecord]:
        return [record.model_copy() for record in self._records]

    async def _save_records(self, records: list[NotificationRecord]) -> None:
        self._records = [record.model_copy() for record in records]

    async def load_policy(self) -> NotificationPolicy | None:
        return self._policy.model_copy() if self._policy else None

    async def _save_policy(self, policy: NotificationPolicy) -> None:
        self._policy = policy.model_copy()


class JsonFileHistoryStore(NotificationHistoryStore):
    """History kept in a single JSON document on disk.

    Layout: ``{"records": [...], "policy": {...} | null}``.
    """

    def __init__(self, path: Path, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        super().__init__(max_records)
        self.path = Path(path)

    async def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"records": [], "policy": None}
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            raise HistoryStoreError(f"Cannot read history file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise HistoryStoreError(f"Unexpected history file layout in {self.path}")
        data.setdefault("records", [])
        data.setdefault("policy", None)
        return data

    async def _write_document(self, data: dict[str, Any]) -> None:
        serialized = json.dumps(data, indent=2, ensure_ascii=False, default=str)

        def _write() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix="history_", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                    tmp_file.write(serialized)
                    tmp_file.flush()
                    os.fsync(tmp_file.fileno())
                os.replace(temp_path, self.path)
            finally:
                if os.path.exists(temp_path):
                    try:
                        os.remove(temp_path)
                    except FileNotFoundError:
                        pass

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            ErrorHandler.log_and_reraise(
                "write notification history",
                HistoryStoreError(f"Cannot write history file {self.path}: {e}"),
                path=str(self.path),
            )

    async def _load_records(self) -> list[NotificationRecord]:
        data = await self._read_document()
        try:
            return [NotificationRecord.model_validate(item) for item in data["records"]]
        except ValidationError as e:
            raise HistoryStoreError(f"Invalid notification record: {e}") from e

    async def _save_records(self, records: list[NotificationRecord]) -> None:
        data = await self._read_document()
        data["records"] = [record.model_dump(mode="json") for record in records]
        await self._write_document(data)

    async def load_policy(self) -> NotificationPolicy | None:
        data = await self._read_document()
        if not data["policy"]:
            return None
        try:
            return NotificationPolicy.model_validate(data["policy"])
        except ValidationError as e:
            raise HistoryStoreError(f"Invalid stored policy: {e}") from e

    async def _save_policy(self, policy: NotificationPolicy) -> None:
        data = await self._read_document()
        data["policy"] = policy.model_dump(mode="json")
        await self._write_document(data)
