"""Error types raised while parsing and running a tinysh line.

Every error carries the exit status the line ends with. ``execute_line``
catches them all, reports them on stderr and carries on with the next line.
"""
from __future__ import annotations


class ShellError(Exception):
    status: int = 1
    # Bash-style messages (e.g. "ls: command not found") are printed as-is,
    # everything else gets the "tinysh: " prefix.
    prefixed: bool = True


# ---- Parse errors ----

class ParseError(ShellError):
    status = 2


class UnterminatedQuote(ParseError):
    def __init__(self, quote: str) -> None:
        super().__init__(f"syntax error: unterminated {quote} quote")
        self.quote = quote


class MissingRedirectionTarget(ParseError):
    def __init__(self, op: str) -> None:
        super().__init__(f"syntax error: missing target after '{op}'")
        self.op = op


class PipelineTooShort(ParseError):
    def __init__(self) -> None:
        super().__init__("syntax error near unexpected token '|'")


# ---- Resolution ----

class ResolutionError(ShellError):
    status = 127
    prefixed = False


class CommandNotFound(ResolutionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: command not found")
        self.name = name


# ---- Runtime ----

class ExecError(ShellError):
    """Spawn, wait or redirection-open failure."""


# ---- Pipelines ----

class PipelineError(ShellError):
    pass


class DisallowedBuiltin(PipelineError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: builtin cannot be used in a pipeline")
        self.name = name


class StageNotFound(PipelineError):
    status = 127
    prefixed = False

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: command not found")
        self.name = name


class StageSpawnFailure(PipelineError):
    status = 126

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"{name}: {reason}")
        self.name = name
