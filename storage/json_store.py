"""
Flat-file JSON backend.

Each table is one pretty-printed document (``{"users": [...]}``,
``{"requests": [...]}``) read and written wholesale. Every read/modify/write
cycle holds a ``FileLock`` on ``<file>.lock`` and the new document is written to
a temp file and moved into place, so concurrent writers in separate processes
serialise instead of clobbering each other.
"""
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import replace
from typing import List, Mapping, Optional

from filelock import FileLock

from storage.base import UserRepository, SwapRequestRepository, matches
from storage.records import UserRecord, SwapRequestRecord, PENDING

logger = logging.getLogger(__name__)

USERS_FILE = "users.json"
REQUESTS_FILE = "swap-requests.json"


class JsonTable:
    def __init__(self, path: str, root_key: str, timeout: float = 10):
        self.path = path
        self.root_key = root_key
        self.lock = FileLock(path + ".lock", timeout=timeout)
        self.ensure_exists()

    def ensure_exists(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self.lock:
            if not os.path.exists(self.path):
                self._write([])
                logger.info("Created data file %s", self.path)

    def _read(self) -> List[dict]:
        with open(self.path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return list(data.get(self.root_key) or [])

    def _write(self, rows: List[dict]):
        directory = os.path.dirname(self.path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({self.root_key: rows}, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def rows(self) -> List[dict]:
        with self.lock:
            return self._read()

    @contextmanager
    def transaction(self):
        """Yield the row list under the lock; it is written back if the block succeeds."""
        with self.lock:
            rows = self._read()
            yield rows
            self._write(rows)


def _find(rows: List[dict], row_id: str) -> int:
    for idx, row in enumerate(rows):
        if str(row.get("id")) == row_id:
            return idx
    return -1


class JsonUserRepository(UserRepository):
    def __init__(self, data_dir: str):
        self.table = JsonTable(os.path.join(data_dir, USERS_FILE), "users")

    def get(self, user_id: str) -> Optional[UserRecord]:
        rows = self.table.rows()
        idx = _find(rows, str(user_id))
        return UserRecord.from_document(rows[idx]) if idx >= 0 else None

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        for row in self.table.rows():
            if row.get("email") == email:
                return UserRecord.from_document(row)
        return None

    def list(self) -> List[UserRecord]:
        return [UserRecord.from_document(row) for row in self.table.rows()]

    def insert(self, record: UserRecord) -> bool:
        with self.table.transaction() as rows:
            if any(r.get("email") == record.email or str(r.get("id")) == record.id for r in rows):
                return False
            rows.append(record.to_document())
        return True

    def upsert(self, record: UserRecord) -> UserRecord:
        with self.table.transaction() as rows:
            idx = _find(rows, record.id)
            if idx >= 0:
                rows[idx] = record.to_document()
            else:
                rows.append(record.to_document())
        return record

    def cas_update(self, user_id: str, expected: Mapping, changes: Mapping) -> Optional[UserRecord]:
        with self.table.transaction() as rows:
            idx = _find(rows, str(user_id))
            if idx < 0:
                return None
            current = UserRecord.from_document(rows[idx])
            if not matches(current, expected):
                return None
            updated = replace(current, **changes)
            rows[idx] = updated.to_document()
        return updated


class JsonSwapRequestRepository(SwapRequestRepository):
    def __init__(self, data_dir: str):
        self.table = JsonTable(os.path.join(data_dir, REQUESTS_FILE), "requests")

    def get(self, request_id: str) -> Optional[SwapRequestRecord]:
        rows = self.table.rows()
        idx = _find(rows, request_id)
        return SwapRequestRecord.from_document(rows[idx]) if idx >= 0 else None

    def list(self, from_user_id: str = None, to_user_id: str = None,
             status: str = None) -> List[SwapRequestRecord]:
        out = []
        for row in self.table.rows():
            rec = SwapRequestRecord.from_document(row)
            if from_user_id is not None and rec.from_user_id != from_user_id:
                continue
            if to_user_id is not None and rec.to_user_id != to_user_id:
                continue
            if status is not None and rec.status != status:
                continue
            out.append(rec)
        return out

    def insert_pending(self, record: SwapRequestRecord) -> bool:
        with self.table.transaction() as rows:
            for row in rows:
                if (
                    str(row.get("fromUserId")) == record.from_user_id
                    and str(row.get("toUserId")) == record.to_user_id
                    and row.get("status") == PENDING
                ):
                    return False
            rows.append(record.to_document())
        return True

    def upsert(self, record: SwapRequestRecord) -> SwapRequestRecord:
        with self.table.transaction() as rows:
            idx = _find(rows, record.id)
            if idx >= 0:
                rows[idx] = record.to_document()
            else:
                rows.append(record.to_document())
        return record

    def cas_update(self, request_id: str, expected: Mapping, changes: Mapping) -> Optional[SwapRequestRecord]:
        with self.table.transaction() as rows:
            idx = _find(rows, request_id)
            if idx < 0:
                return None
            current = SwapRequestRecord.from_document(rows[idx])
            if not matches(current, expected):
                return None
            updated = replace(current, **changes)
            rows[idx] = updated.to_document()
        return updated

    def delete(self, request_id: str, expected: Mapping = None) -> bool:
        with self.table.transaction() as rows:
            idx = _find(rows, request_id)
            if idx < 0 or not matches(SwapRequestRecord.from_document(rows[idx]), expected):
                return False
            del rows[idx]
        return True
