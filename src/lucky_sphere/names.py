from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from . import config

_SPLIT_RE = re.compile(r"[\n,，]")


def parse_names(raw: str | Iterable[str]) -> list[str]:
    """
    Turn free-form input into an ordered list of unique display names.

    Accepts a newline/comma separated string or an iterable of such strings.
    Entries are stripped, blanks dropped and duplicates removed keeping the
    first occurrence.
    """
    chunks = [raw] if isinstance(raw, str) else list(raw)
    seen: set[str] = set()
    names: list[str] = []
    for chunk in chunks:
        for part in _SPLIT_RE.split(chunk):
            name = part.strip()
            if not name or name in seen:
                continue
            seen.add(name)
            names.append(name)
    return names


def speakable(name: str) -> str:
    return name.replace("_", " ")


class NamePool:
    def __init__(self, names: Iterable[str] | None = None) -> None:
        self.names: list[str] = parse_names(names) if names is not None else list(config.DEFAULT_NAMES)

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self):
        return iter(self.names)

    def replace(self, names: Iterable[str]) -> None:
        self.names = parse_names(names)

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self.names)

    @classmethod
    def from_file(cls, path: Path) -> "NamePool":
        text = path.read_text(encoding="utf-8")
        return cls(text.splitlines())
