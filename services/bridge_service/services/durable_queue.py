"""Crash-tolerant queue of outbound events awaiting delivery.

Each item is one independently addressable record in a ``RecordStore``; the
store's key listing is the only index. The file-backed store writes every
record atomically (temp file, fsync, rename) so an enqueue from the webhook
can interleave with a retry sweep deleting other records without any lock.
"""

import os
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol

from libs.common.datetime_utils import utc_now
from libs.common.errors import PersistenceError
from libs.common.logging import get_logger
from pydantic import ValidationError
from services.bridge_service.models import QueueItem, QueueItemType

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class RecordStore(Protocol):
    """Durable keyed record storage."""

    def put(self, key: str, data: bytes) -> None: ...

    def get(self, key: str) -> Optional[bytes]: ...

    def list(self) -> List[str]: ...

    def delete(self, key: str) -> bool: ...

    def quarantine(self, key: str) -> None: ...


class FileRecordStore:
    """One ``<key>.json`` file per record in a flat directory."""

    suffix = ".json"

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        try:
            if not self.directory.exists():
                self.directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Queue directory created: {self.directory}")
        except OSError as e:
            raise PersistenceError(
                f"Cannot create queue directory {self.directory}: {e}"
            ) from e

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid record key: {key!r}")
        return self.directory / f"{key}{self.suffix}"

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        tmp_path = self.directory / f".{key}.{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp_path, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove temp file {tmp_path}")
            raise PersistenceError(f"Failed to write queue record {key}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read queue record {key}: {e}") from e

    def list(self) -> List[str]:
        try:
            names = os.listdir(self.directory)
        except OSError as e:
            raise PersistenceError(
                f"Failed to list queue directory {self.directory}: {e}"
            ) from e
        keys = []
        for name in names:
            if not name.endswith(self.suffix) or name.startswith("."):
                continue
            key = name[: -len(self.suffix)]
            if _KEY_PATTERN.match(key):
                keys.append(key)
            else:
                logger.error(f"Foreign file in queue directory set aside: {name}")
                self._set_aside(name)
        return sorted(keys)

    def _set_aside(self, name: str) -> None:
        """Move ``name`` out of the listing by renaming it ``*.corrupt``."""
        path = self.directory / name
        try:
            path.rename(path.with_name(f"{name}.corrupt"))
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(f"Failed to set aside {name}: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to delete queue record {key}: {e}") from e

    def quarantine(self, key: str) -> None:
        self._set_aside(self._path(key).name)


def new_item_id(now: datetime) -> str:
    """Millisecond timestamp plus a random suffix; sorts in creation order."""
    return f"{int(now.timestamp() * 1000):013d}-{uuid.uuid4().hex[:9]}"


class DurableQueue:
    """At-least-once queue of pending outbound events."""

    def __init__(
        self, store: RecordStore, *, clock: Callable[[], datetime] = utc_now
    ):
        self._store = store
        self._clock = clock

    def enqueue(self, item_type: QueueItemType | str, payload: dict[str, Any]) -> str:
        """Persist a new item with retry_count 0 and return its id.

        Raises PersistenceError if the item could not be stored.
        """
        now = self._clock()
        item = QueueItem(
            id=new_item_id(now),
            type=getattr(item_type, "value", item_type),
            payload=payload,
            enqueued_at=now,
            retry_count=0,
        )
        self._store.put(item.id, item.model_dump_json().encode("utf-8"))
        logger.info(f"Item added to queue: {item.id} ({item.type})")
        return item.id

    def get(self, item_id: str) -> Optional[QueueItem]:
        raw = self._store.get(item_id)
        if raw is None:
            return None
        return self._decode(item_id, raw)

    def list_all(self) -> List[QueueItem]:
        """Every persisted item, oldest first."""
        items = []
        for key in self._store.list():
            raw = self._store.get(key)
            if raw is None:
                # Removed by a concurrent sweep since listing
                continue
            item = self._decode(key, raw)
            if item is not None:
                items.append(item)
        items.sort(key=lambda item: (item.enqueued_at, item.id))
        return items

    def remove(self, item_id: str) -> None:
        if self._store.delete(item_id):
            logger.info(f"Item removed from queue: {item_id}")

    def update_retry_count(self, item_id: str, new_count: int) -> None:
        item = self.get(item_id)
        if item is None:
            return
        updated = item.model_copy(update={"retry_count": new_count})
        self._store.put(item_id, updated.model_dump_json().encode("utf-8"))

    def size(self) -> int:
        return len(self._store.list())

    def clear(self) -> int:
        removed = sum(1 for key in self._store.list() if self._store.delete(key))
        logger.info(f"Queue cleared ({removed} items)")
        return removed

    def _decode(self, key: str, raw: bytes) -> Optional[QueueItem]:
        try:
            return QueueItem.model_validate_json(raw)
        except ValidationError as e:
            logger.error(
                f"Unreadable queue record {key} set aside: {e.error_count()} errors"
            )
            self._store.quarantine(key)
            return None
