"""
Document Stores

Whole-document persistence for small JSON state (positions, breaker state).
Each load returns a fresh copy and each save overwrites the document.

Single writer only: there is no locking between processes.
"""

import copy
import json
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from loguru import logger


@runtime_checkable
class DocumentStore(Protocol):
    def load(self) -> Optional[dict[str, Any]]:
        """Return the stored document, or None when nothing has been saved."""
        ...

    def save(self, document: dict[str, Any]) -> None:
        ...


class InMemoryDocumentStore:
    """DocumentStore kept in process memory (tests, ephemeral sessions)."""

    def __init__(self, document: Optional[dict[str, Any]] = None):
        self._document = copy.deepcopy(document) if document is not None else None

    def load(self) -> Optional[dict[str, Any]]:
        return copy.deepcopy(self._document) if self._document is not None else None

    def save(self, document: dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)


class JsonFileDocumentStore:
    """
    DocumentStore backed by a JSON file.

    Parent directories are created on first save. Values that JSON cannot
    encode natively (dates, datetimes) are written with str().
    """

    def __init__(self, path: str | Path, default: Optional[Callable[[Any], Any]] = str):
        self.path = Path(path)
        self._default = default

    def load(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            logger.warning(f"Document {self.path} is empty")
            return None
        return json.loads(text)

    def save(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(document, indent=2, default=self._default), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug(f"Saved document {self.path}")

    def __repr__(self) -> str:
        return f"JsonFileDocumentStore({self.path})"
