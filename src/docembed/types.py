from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(slots=True)
class Document:
    id: str
    text: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class EmbeddedDocument:
    document: Document
    vectors: list[list[float]]


@dataclass(slots=True)
class Point:
    id: str
    vector: list[float]
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ScoredPoint:
    id: str
    score: float
    payload: Mapping[str, Any] = field(default_factory=dict)
