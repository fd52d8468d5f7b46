"""JSON-file backed table of stored signals."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from app.schemas import StoredSignal
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "signals"


class SignalTable:
    """Keyed by signal id; callers only ever see copies of stored rows.

    With a ``persistence_path`` every write rewrites the whole file, which
    is reloaded on construction.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._rows: Dict[str, StoredSignal] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._rows = self._read_file(persistence_path)

    def put_item(self, item: StoredSignal) -> None:
        with self._lock:
            self._rows[item.id] = item.model_copy(deep=True)
            self._flush()

    def get_item(self, key: str) -> Optional[StoredSignal]:
        with self._lock:
            row = self._rows.get(key)
            return row.model_copy(deep=True) if row is not None else None

    def delete_item(self, key: str) -> bool:
        with self._lock:
            if key not in self._rows:
                return False
            del self._rows[key]
            self._flush()
            return True

    def scan(self) -> List[StoredSignal]:
        """Copies of every row, oldest insert first."""
        with self._lock:
            return [row.model_copy(deep=True) for row in self._rows.values()]

    def _flush(self) -> None:
        if not self.persistence_path:
            return
        document = {
            key: row.model_dump(mode="json", by_alias=True) for key, row in self._rows.items()
        }
        staging = self.persistence_path.with_suffix(self.persistence_path.suffix + ".tmp")
        staging.write_text(json.dumps(document, indent=2))
        staging.replace(self.persistence_path)

    def _read_file(self, path: Path) -> Dict[str, StoredSignal]:
        if not path.exists():
            return {}
        try:
            document = json.loads(path.read_text() or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Ignoring unreadable table file %s for %s",
                path,
                self.name,
                extra={"reason": str(exc)},
            )
            return {}

        rows = {key: StoredSignal.model_validate(payload) for key, payload in document.items()}
        logger.info("Loaded %d signals into table %s", len(rows), self.name)
        return rows


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> SignalTable:
    settings = get_settings()
    table_path = settings.signals_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return SignalTable(name=name or DEFAULT_TABLE_NAME, persistence_path=persistence)
