from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class Document:
    id: int
    url: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    embedding: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Public representation; the embedding is never returned to callers."""
        return {
            "id": self.id,
            "url": self.url,
            "description": self.description,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            id=int(data["id"]),
            url=data.get("url"),
            description=data.get("description"),
            metadata=data.get("metadata"),
        )

    def snippet(self, max_len: int = 160) -> str:
        """Return a centered snippet of the description: head + ... + tail, length <= max_len."""
        s = self.description or ""
        if len(s) <= max_len:
            return s
        if max_len <= 3:
            return s[:max_len]
        budget = max_len - 3
        head_len = budget // 2
        tail_len = budget - head_len
        return f"{s[:head_len]}...{s[-tail_len:]}"


@dataclass
class SearchHit:
    document: Document
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {**self.document.to_dict(), "score": self.score}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchHit":
        return cls(document=Document.from_dict(data), score=float(data.get("score", 0.0)))


def format_search_hit(hit: SearchHit, max_len: int = 160) -> str:
    """Create a compact string representation for logs/printing.

    Example: "id=42; score=0.8123; url=https://...; desc=<snippet>"
    """
    doc = hit.document
    return (
        f"id={doc.id}; score={hit.score:.4f}; url={doc.url or '-'}; "
        f"desc={doc.snippet(max_len)}"
    )
