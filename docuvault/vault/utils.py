from __future__ import annotations

import re
import unicodedata
from pathlib import PurePosixPath
from typing import Set


_UNSAFE_NAME = re.compile(r"[^a-z0-9.]", re.IGNORECASE)
_UNSAFE_SEGMENT = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def name_key(name: str) -> str:
    """Comparison key for file names written by different tools."""
    return unicodedata.normalize("NFC", name).strip()


def path_key(path: str) -> str:
    return "/".join(name_key(p) for p in split_path(path))


def split_path(path: str) -> list[str]:
    return [p for p in str(path).replace("\\", "/").split("/") if p and p != "."]


def join_path(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p)


def safe_name(name: str) -> str:
    return _UNSAFE_NAME.sub("_", name)


def safe_segment(name: str) -> str:
    return _UNSAFE_SEGMENT.sub("_", name)


def file_ext(name: str) -> str:
    return PurePosixPath(name).suffix.lower()


def unique_name(name: str, taken: Set[str], sep: str = "_") -> str:
    """Return `name`, or `stem<sep>n.ext` for the first n that is not taken."""
    if name not in taken:
        return name
    p = PurePosixPath(name)
    stem, suffix = (name[: -len(p.suffix)], p.suffix) if p.suffix else (name, "")
    n = 1
    while True:
        candidate = f"{stem}{sep}{n}{suffix}"
        if candidate not in taken:
            return candidate
        n += 1


def numbered_name(name: str, n: int) -> str:
    """`report.pdf` -> `report (n).pdf`"""
    p = PurePosixPath(name)
    stem = name[: -len(p.suffix)] if p.suffix else name
    return f"{stem} ({n}){p.suffix}"
