"""Output redirection: pulling ``>``/``>>``/``2>`` operators out of a
command's words and opening their targets."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import IO, List, Optional, Sequence, Tuple

from errors import ExecError, MissingRedirectionTarget
from lexer import is_quoted

# operator -> (fd, append)
REDIRECT_OPERATORS = {
    '>': (1, False),
    '1>': (1, False),
    '>>': (1, True),
    '1>>': (1, True),
    '2>': (2, False),
    '2>>': (2, True),
}


@dataclass
class RedirectTarget:
    path: str
    append: bool = False


@dataclass
class RedirectionSpec:
    """Where a command's stdout/stderr go.

    Targets are kept in the order they were written. When the same stream is
    redirected twice the last target wins, but every target is still
    created (or truncated) on open, like a POSIX shell does.
    """

    targets: List[Tuple[int, RedirectTarget]] = field(default_factory=list)

    def _last(self, fd: int) -> Optional[RedirectTarget]:
        found = None
        for target_fd, target in self.targets:
            if target_fd == fd:
                found = target
        return found

    @property
    def stdout(self) -> Optional[RedirectTarget]:
        return self._last(1)

    @property
    def stderr(self) -> Optional[RedirectTarget]:
        return self._last(2)

    def open(self, cwd: str) -> "OpenRedirections":
        """Open all targets relative to ``cwd``. Raises ExecError on failure."""
        opened = OpenRedirections()
        winners = {1: self.stdout, 2: self.stderr}
        try:
            for fd, target in self.targets:
                path = os.path.join(cwd, target.path)
                f = open(path, 'a' if target.append else 'w', encoding='utf-8')
                if winners.get(fd) is target:
                    if fd == 1:
                        opened.stdout = f
                    else:
                        opened.stderr = f
                else:
                    f.close()
        except OSError as e:
            opened.close()
            raise ExecError(f"{target.path}: {e.strerror or e}") from e
        return opened


class OpenRedirections:
    """The files opened for one stage. Closing releases the parent's copies."""

    def __init__(self) -> None:
        self.stdout: Optional[IO[str]] = None
        self.stderr: Optional[IO[str]] = None

    def close(self) -> None:
        for f in (self.stdout, self.stderr):
            if f is not None:
                try:
                    f.close()
                except OSError:
                    pass

    def __enter__(self) -> "OpenRedirections":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def extract(tokens: Sequence[str]) -> Tuple[RedirectionSpec, List[str]]:
    """Split redirection operators and their targets out of ``tokens``.

    Only unquoted words count as operators. Everything else is returned in
    its original order. Raises MissingRedirectionTarget when an operator is
    the last word.
    """
    spec = RedirectionSpec()
    args: List[str] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok in REDIRECT_OPERATORS and not is_quoted(tok):
            if i + 1 >= len(tokens):
                raise MissingRedirectionTarget(tok)
            fd, append = REDIRECT_OPERATORS[tok]
            spec.targets.append((fd, RedirectTarget(str(tokens[i + 1]), append)))
            i += 2
            continue
        args.append(tok)
        i += 1
    return spec, args
