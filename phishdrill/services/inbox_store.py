import json
import logging
import os
import tempfile
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from phishdrill.schemas import EmailRecord

logger = logging.getLogger(__name__)


class InboxStoreError(Exception):
    """Shared inbox could not be read or written"""


def atomic_write_json(path: str, payload) -> None:
    """Write JSON to a temp file beside `path`, then rename over it"""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class JsonInboxStore:
    """
    Whole-file JSON inbox shared by the offense agent, the defense agent
    and the API.

    Every operation is read-all / mutate in memory / overwrite-all with no
    locking: concurrent writers race and the last one wins. Entries that
    do not parse as EmailRecord are skipped on load but written back
    untouched, at their original positions, on every save.
    """

    def __init__(self, path: str):
        self.path = path

    def _read_raw(self) -> list:
        if not os.path.exists(self.path):
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise InboxStoreError(f"Cannot read inbox {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise InboxStoreError(f"Inbox {self.path} is not a JSON array")
        return raw

    @staticmethod
    def _parse(entry) -> Optional[EmailRecord]:
        if not isinstance(entry, dict):
            return None
        try:
            return EmailRecord.model_validate(entry)
        except ValidationError:
            return None

    def load(self) -> List[EmailRecord]:
        records = []
        for i, entry in enumerate(self._read_raw()):
            record = self._parse(entry)
            if record is None:
                entry_id = entry.get("id") if isinstance(entry, dict) else None
                logger.warning(f"Skipping malformed inbox entry #{i} ({entry_id})")
                continue
            records.append(record)
        return records

    def _unparsed_entries(self) -> List[Tuple[int, object]]:
        """(position, raw entry) for everything load() skips in the current file"""
        try:
            raw = self._read_raw()
        except InboxStoreError as e:
            logger.warning(f"Overwriting unreadable inbox: {e}")
            return []
        return [(i, entry) for i, entry in enumerate(raw) if self._parse(entry) is None]

    def save(self, records: Iterable[EmailRecord]) -> None:
        payload = [r.to_wire() for r in records]
        for i, entry in self._unparsed_entries():
            payload.insert(min(i, len(payload)), entry)
        try:
            atomic_write_json(self.path, payload)
        except OSError as e:
            raise InboxStoreError(f"Cannot write inbox {self.path}: {e}") from e

    def append(self, new_records: Iterable[EmailRecord]) -> int:
        """Add records to the end of the inbox; returns the number of readable records"""
        records = self.load()
        records.extend(new_records)
        self.save(records)
        return len(records)

    def find(self, ids: Iterable[str]) -> Dict[str, EmailRecord]:
        wanted = set(ids)
        return {r.id: r for r in self.load() if r.id in wanted}
