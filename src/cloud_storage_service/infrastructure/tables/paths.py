"""Document id helpers shared by table implementations."""

from __future__ import annotations


def parent_path(document_id: str) -> str:
    """Return the path a document id sits under (`/a/b/c` -> `/a/b`)."""

    if "/" not in document_id:
        return ""
    return document_id.rsplit("/", 1)[0]


def normalize_path(path: str) -> str:
    return path.rstrip("/") if path != "/" else path


__all__ = ["normalize_path", "parent_path"]
