"""Domain value types shared across the control plane."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Violation:
    """A single reason a proposed change was rejected."""

    field: str
    message: str


@dataclass(frozen=True)
class Chunk:
    """An already-ingested content chunk belonging to a project."""

    id: str
    project_id: str
    document_id: str
    chunk_index: int
    text: str
