"""In-memory command history with plain-text file persistence.

The file format is one entry per line, the same as readline's history files
without timestamps.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Tuple


class History:
    """Lines entered at the prompt, oldest first.

    ``mirror`` is called for entries that do not come from the line editor
    itself (e.g. lines loaded from a file) so that readline's own recall
    buffer stays in step.
    """

    def __init__(self, mirror: Optional[Callable[[str], None]] = None) -> None:
        self.entries: List[str] = []
        self.mirror = mirror
        # Index of the first entry not yet written by append_file()
        self._appended: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, line: str, *, mirror: bool = True) -> None:
        self.entries.append(line)
        if mirror and self.mirror is not None:
            self.mirror(line)

    def mark_saved(self) -> None:
        """Treat every current entry as already written to the history file."""
        self._appended = len(self.entries)

    def tail(self, count: Optional[int] = None) -> List[Tuple[int, str]]:
        """Return ``(number, line)`` pairs, numbered from 1, for the last
        ``count`` entries (all of them when count is None)."""
        numbered = list(enumerate(self.entries, start=1))
        if count is None:
            return numbered
        if count <= 0:
            return []
        return numbered[-count:]

    def read_file(self, path: str) -> int:
        """Append every non-empty line of ``path``. Returns how many were read."""
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            lines = [ln.rstrip('\n') for ln in f]
        count = 0
        for ln in lines:
            if ln.strip():
                self.add(ln)
                count += 1
        return count

    def write_file(self, path: str) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            for ln in self.entries:
                f.write(ln + '\n')
        self._appended = len(self.entries)

    def append_file(self, path: str) -> None:
        """Append the entries added since the last write/append to ``path``."""
        with open(path, 'a', encoding='utf-8') as f:
            for ln in self.entries[self._appended:]:
                f.write(ln + '\n')
        self._appended = len(self.entries)
