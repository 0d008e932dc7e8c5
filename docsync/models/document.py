"""Documents and change events produced by the Drive source."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class Document:
    """A supported source file inside the monitored folder tree.

    ``path`` is derived from the folder chain and is display-only; ``id`` is
    the authoritative identity.
    """

    id: str
    name: str
    mime_type: str
    modified_time: str
    path: str
    parent_ids: List[str] = field(default_factory=list)


@dataclass
class Change:
    document_id: str
    kind: ChangeKind
    document: Optional[Document] = None


@dataclass
class ChangeSet:
    changes: List[Change]
    new_cursor: str


@dataclass
class FolderInfo:
    """Cached folder metadata used for ancestor walks."""

    id: str
    name: str
    parent_ids: List[str] = field(default_factory=list)
