from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

"""Shared reservation document.

The shared store holds exactly one document ``{reservations, updatedAt}``.
Writes replace the whole document (last writer wins); readers rerun the full
classification whenever it changes. No versioning, no conflict detection.
"""

__all__ = [
    "PersistenceFailure",
    "StoreDocument",
    "DocumentStore",
    "InMemoryDocumentStore",
]

logger = logging.getLogger(__name__)


class PersistenceFailure(Exception):
    """Raised when the shared store cannot be read or written."""


@dataclass(frozen=True)
class StoreDocument:
    reservations: tuple[Mapping[str, str], ...]  # rows in original column shape
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservations": [dict(r) for r in self.reservations],
            "updatedAt": self.updated_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoreDocument:
        try:
            rows = data.get("reservations") or []
            updated = datetime.fromisoformat(str(data["updatedAt"]))
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceFailure(f"malformed store document: {e}") from e
        return cls(
            reservations=tuple({str(k): _cell(v) for k, v in r.items()} for r in rows),
            updated_at=updated,
        )

    @classmethod
    def from_json(cls, text: str) -> StoreDocument:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PersistenceFailure(f"malformed store document: {e}") from e
        return cls.from_dict(data)


def _cell(value: Any) -> str:
    # JSON null は空欄扱い ("None" にしない)
    return "" if value is None else str(value)


Listener = Callable[[StoreDocument], None]


class DocumentStore(Protocol):
    def ensure_schema(self) -> None: ...

    def load(self) -> StoreDocument | None: ...

    def save(self, document: StoreDocument) -> None: ...


class InMemoryDocumentStore:
    """Process-local store; listeners are notified synchronously after a save."""

    def __init__(self, document: StoreDocument | None = None) -> None:
        self._document = document
        self._listeners: list[Listener] = []

    def ensure_schema(self) -> None:
        pass

    def load(self) -> StoreDocument | None:
        return self._document

    def save(self, document: StoreDocument) -> None:
        self._document = document
        for listener in list(self._listeners):
            listener(document)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        if self._document is not None:
            listener(self._document)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
