"""JSON file snapshot of the pending request queue."""

import logging
import os
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from outbound_queue.ports.http import Request
from outbound_queue.ports.store import QueueStorePort

__all__ = ["JsonFileQueueStore", "DEFAULT_QUEUE_FILENAME"]

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_FILENAME = "http_tasks.json"

_requests_adapter = TypeAdapter(list[Request])


class JsonFileQueueStore(QueueStorePort):
    """Persist the queue as a JSON array in a single file.

    Writes go to a temporary sibling file that replaces the snapshot
    atomically, so a crash mid-write keeps the previous snapshot intact.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize store.

        Args:
            path: Snapshot file location.
        """
        self.path = Path(path)

    def load(self) -> list[Request]:
        """Read the snapshot.

        Returns:
            Persisted requests, or an empty list if the file is missing,
            unreadable or not a valid request list.
        """
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"No queue snapshot at {self.path}, starting empty")
            return []
        except OSError as e:
            logger.warning(f"Cannot read queue snapshot {self.path}: {e}")
            return []

        try:
            requests = _requests_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                f"Discarding unreadable queue snapshot {self.path} "
                f"({e.error_count()} error(s))"
            )
            return []

        logger.debug(f"Loaded {len(requests)} request(s) from {self.path}")
        return requests

    def save(self, requests: list[Request]) -> None:
        """Replace the snapshot with requests.

        Write failures are logged; the caller keeps working in memory.

        Args:
            requests: Queue content in execution order.
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(_requests_adapter.dump_json(requests))
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to persist queue to {self.path}: {e}")
