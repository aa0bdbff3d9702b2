from __future__ import annotations

import io
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import IO, Dict, List, Optional, Sequence, Tuple

from command import (
    TEXT_BUILTINS,
    Builtin,
    BuiltinKind,
    External,
    NotFound,
    ResolvedCommand,
    resolve,
)
from errors import (
    CommandNotFound,
    DisallowedBuiltin,
    ExecError,
    PipelineTooShort,
    ShellError,
    StageNotFound,
    StageSpawnFailure,
)
from history import History
from lexer import split_pipeline, tokenize
from redirs import RedirectionSpec, extract

PROG = "tinysh"


class ShellSession:
    """Holds session-wide interpreter state.

    The working directory lives here rather than in the process: ``cd`` only
    changes ``self.cwd`` and children are started in it, so several sessions
    can share one Python process.
    """

    def __init__(
        self,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        history: Optional[History] = None,
    ) -> None:
        # String-only environment handed to every child process
        self.env: Dict[str, str] = dict(os.environ) if env is None else dict(env)
        self.cwd: str = os.path.abspath(cwd) if cwd else os.getcwd()
        self.env['PWD'] = self.cwd
        self.history: History = history if history is not None else History()
        self.last_status: int = 0
        self.exit_requested: bool = False
        self.exit_status: int = 0

    @property
    def search_path(self) -> str:
        return self.env.get('PATH', os.defpath)

    def home(self) -> str:
        return self.env.get('HOME') or os.path.expanduser('~')

    def resolve(self, name: str) -> ResolvedCommand:
        # Never cached: PATH or the filesystem may change between lines
        return resolve(name, self.search_path, self.cwd)

    def request_exit(self, status: int) -> None:
        self.exit_requested = True
        self.exit_status = status


@dataclass
class PipelineStage:
    index: int
    resolved: ResolvedCommand
    argv: List[str]  # argv[0] is the name as typed
    redirs: RedirectionSpec

    @property
    def name(self) -> str:
        return self.argv[0]

    @property
    def args(self) -> List[str]:
        return self.argv[1:]


# ---- Output of the previous pipeline stage ----

@dataclass
class LiveStream:
    """Read end of the pipe a running external stage writes to."""
    handle: IO[bytes]


@dataclass
class Buffered:
    """Text an in-process built-in produced."""
    text: str


StageOutput = LiveStream | Buffered


def _report(err: ShellError) -> None:
    msg = f"{PROG}: {err}" if err.prefixed else str(err)
    sys.stdout.flush()
    sys.stderr.write(msg + "\n")
    sys.stderr.flush()


def _exit_status(returncode: int) -> int:
    # Killed by a signal: report it the way shells do
    if returncode < 0:
        return 128 - returncode
    return returncode


def _parse_stage(index: int, segment: str, session: ShellSession) -> Tuple[RedirectionSpec, Optional[PipelineStage]]:
    """Tokenize, extract redirections and resolve one segment.

    The stage is None when the segment holds no command word.
    """
    redirs, words = extract(tokenize(segment))
    if not words:
        return redirs, None
    argv = [str(w) for w in words]
    return redirs, PipelineStage(index=index, resolved=session.resolve(argv[0]), argv=argv, redirs=redirs)


# ---- Built-ins ----

def _builtin_echo(args: Sequence[str], out: IO[str]) -> int:
    out.write(' '.join(args) + "\n")
    return 0


def _builtin_pwd(session: ShellSession, out: IO[str]) -> int:
    out.write(session.cwd + "\n")
    return 0


def _builtin_type(args: Sequence[str], session: ShellSession, out: IO[str], err: IO[str]) -> int:
    rc = 0
    for name in args:
        match session.resolve(name):
            case Builtin():
                out.write(f"{name} is a shell builtin\n")
            case External(path=path):
                out.write(f"{name} is {path}\n")
            case NotFound():
                err.write(f"{name}: not found\n")
                rc = 1
    return rc


def _builtin_cd(args: Sequence[str], session: ShellSession, err: IO[str]) -> int:
    if len(args) > 1:
        err.write("cd: too many arguments\n")
        return 1
    target = args[0] if args else '~'
    path = target
    if path == '~' or path.startswith('~/'):
        path = session.home() + path[1:]
    path = os.path.normpath(os.path.join(session.cwd, path))
    if not os.path.exists(path):
        err.write(f"cd: {target}: No such file or directory\n")
        return 1
    if not os.path.isdir(path):
        err.write(f"cd: {target}: Not a directory\n")
        return 1
    if not os.access(path, os.X_OK):
        err.write(f"cd: {target}: Permission denied\n")
        return 1
    session.env['OLDPWD'] = session.cwd
    session.cwd = path
    session.env['PWD'] = path
    return 0


def _builtin_exit(args: Sequence[str], session: ShellSession, err: IO[str]) -> int:
    status = 0
    if args:
        try:
            status = int(args[0]) & 0xFF
        except ValueError:
            err.write(f"exit: {args[0]}: numeric argument required\n")
            status = 2
    session.request_exit(status)
    return status


def _builtin_history(args: Sequence[str], session: ShellSession, out: IO[str], err: IO[str]) -> int:
    hist = session.history
    if args and args[0] in ('-r', '-w', '-a'):
        flag = args[0]
        if len(args) < 2:
            err.write(f"history: {flag}: option requires an argument\n")
            return 2
        path = os.path.join(session.cwd, args[1])
        try:
            if flag == '-r':
                hist.read_file(path)
            elif flag == '-w':
                hist.write_file(path)
            else:
                hist.append_file(path)
        except OSError as e:
            err.write(f"history: {args[1]}: {e.strerror or e}\n")
            return 1
        return 0

    count: Optional[int] = None
    if args:
        try:
            count = int(args[0])
        except ValueError:
            err.write(f"history: {args[0]}: numeric argument required\n")
            return 2
    for num, line in hist.tail(count):
        out.write(f"{num:>5}  {line}\n")
    return 0


def _run_builtin(kind: BuiltinKind, args: Sequence[str], session: ShellSession, out: IO[str], err: IO[str]) -> int:
    match kind:
        case BuiltinKind.ECHO:
            rc = _builtin_echo(args, out)
        case BuiltinKind.PWD:
            rc = _builtin_pwd(session, out)
        case BuiltinKind.TYPE:
            rc = _builtin_type(args, session, out, err)
        case BuiltinKind.CD:
            rc = _builtin_cd(args, session, err)
        case BuiltinKind.EXIT:
            rc = _builtin_exit(args, session, err)
        case BuiltinKind.HISTORY:
            rc = _builtin_history(args, session, out, err)
    out.flush()
    err.flush()
    return rc


# ---- External processes ----

def _spawn(stage: PipelineStage, path: str, session: ShellSession, *, stdin, stdout, stderr) -> subprocess.Popen:
    # Anything a built-in printed must reach the terminal before the child's output
    sys.stdout.flush()
    sys.stderr.flush()
    return subprocess.Popen(
        stage.argv,
        executable=path,
        stdin=stdin,
        stdout=stdout,
        stderr=stderr,
        cwd=session.cwd,
        env=session.env,
    )


def _wait(proc: subprocess.Popen) -> int:
    try:
        return _exit_status(proc.wait())
    except KeyboardInterrupt:
        # The child got the SIGINT as well; collect it before going back to the prompt
        proc.wait()
        return 130


def _feed(proc: subprocess.Popen, text: str) -> None:
    """Write buffered built-in output into a child's stdin and close it.

    A consumer that exits without reading everything is not an error.
    """
    if proc.stdin is None:
        return
    try:
        proc.stdin.write(text.encode('utf-8'))
    except BrokenPipeError:
        pass
    try:
        proc.stdin.close()
    except BrokenPipeError:
        pass
    proc.stdin = None


def _close_stdin(proc: subprocess.Popen) -> None:
    if proc.stdin is None:
        return
    try:
        proc.stdin.close()
    except BrokenPipeError:
        pass
    proc.stdin = None


def _discard(prev: Optional[StageOutput]) -> None:
    if isinstance(prev, LiveStream):
        prev.handle.close()


# ---- Single command ----

def _run_single(segment: str, session: ShellSession) -> int:
    redirs, stage = _parse_stage(0, segment, session)
    if stage is None:
        # "> file" on its own still creates the file
        redirs.open(session.cwd).close()
        return 0

    match stage.resolved:
        case NotFound(name=name):
            raise CommandNotFound(name)
        case Builtin(kind=kind):
            with stage.redirs.open(session.cwd) as files:
                return _run_builtin(
                    kind,
                    stage.args,
                    session,
                    files.stdout or sys.stdout,
                    files.stderr or sys.stderr,
                )
        case External(path=path):
            with stage.redirs.open(session.cwd) as files:
                try:
                    proc = _spawn(stage, path, session, stdin=None, stdout=files.stdout, stderr=files.stderr)
                except OSError as e:
                    raise ExecError(f"{stage.name}: {e.strerror or e}") from e
            return _wait(proc)


# ---- Pipelines ----

def _run_text_builtin(stage: PipelineStage, kind: BuiltinKind, session: ShellSession, is_last: bool) -> Tuple[int, Optional[StageOutput]]:
    with stage.redirs.open(session.cwd) as files:
        err = files.stderr or sys.stderr
        if files.stdout is not None:
            # Output went to a file: the next stage reads nothing
            rc = _run_builtin(kind, stage.args, session, files.stdout, err)
            return rc, None if is_last else Buffered('')
        if is_last:
            return _run_builtin(kind, stage.args, session, sys.stdout, err), None
        buf = io.StringIO()
        rc = _run_builtin(kind, stage.args, session, buf, err)
        return rc, Buffered(buf.getvalue())


def _launch_external(
    stage: PipelineStage,
    path: str,
    session: ShellSession,
    prev: Optional[StageOutput],
    is_last: bool,
) -> Tuple[subprocess.Popen, Optional[StageOutput]]:
    with stage.redirs.open(session.cwd) as files:
        if isinstance(prev, LiveStream):
            stdin = prev.handle
        elif isinstance(prev, Buffered):
            stdin = subprocess.PIPE
        else:
            stdin = None

        if files.stdout is not None:
            stdout = files.stdout
        elif is_last:
            stdout = None
        else:
            stdout = subprocess.PIPE

        try:
            proc = _spawn(stage, path, session, stdin=stdin, stdout=stdout, stderr=files.stderr)
        except OSError as e:
            raise StageSpawnFailure(stage.name, e.strerror or str(e)) from e
        finally:
            # The child owns its copy of the read end now
            _discard(prev)

    out: Optional[StageOutput]
    if proc.stdout is not None:
        out = LiveStream(proc.stdout)
    elif is_last:
        out = None
    else:
        out = Buffered('')
    return proc, out


def _run_pipeline(segments: Sequence[str], session: ShellSession) -> int:
    """Run a chain of two or more stages, left to right.

    Stages are launched in order; whatever stops the chain early, every
    process already started is reaped, last stage first. Text captured from
    a built-in is written to the next child only once every stage is
    running, so a child blocked on a full output pipe always has a reader.
    """
    procs: List[subprocess.Popen] = []
    pending: List[Tuple[subprocess.Popen, str]] = []
    prev: Optional[StageOutput] = None
    last_proc: Optional[subprocess.Popen] = None
    rc = 0
    last = len(segments) - 1
    try:
        for idx, segment in enumerate(segments):
            _, stage = _parse_stage(idx, segment, session)
            if stage is None:
                raise PipelineTooShort()
            is_last = stage.index == last
            match stage.resolved:
                case NotFound(name=name):
                    raise StageNotFound(name)
                case Builtin(kind=kind) if kind not in TEXT_BUILTINS:
                    raise DisallowedBuiltin(stage.name)
                case Builtin(kind=kind):
                    # Built-ins never read their input
                    _discard(prev)
                    prev = None
                    rc, prev = _run_text_builtin(stage, kind, session, is_last)
                    last_proc = None
                case External(path=path):
                    feed = prev.text if isinstance(prev, Buffered) else None
                    proc, prev = _launch_external(stage, path, session, prev, is_last)
                    procs.append(proc)
                    if feed is not None:
                        pending.append((proc, feed))
                    last_proc = proc
    finally:
        _discard(prev)
        try:
            for proc, text in pending:
                _feed(proc, text)
        finally:
            # An interrupted feed must not leave a child waiting for input
            for proc, _ in pending:
                _close_stdin(proc)
            for proc in reversed(procs):
                _wait(proc)

    if last_proc is not None:
        rc = _exit_status(last_proc.returncode)
    return rc


def execute_line(line: str, session: ShellSession) -> int:
    """Run one input line and return its exit status.

    Errors are reported on stderr and turned into a status; the session
    stays usable either way.
    """
    if not line.strip():
        return 0
    try:
        segments = split_pipeline(line)
        if len(segments) == 1:
            rc = _run_single(segments[0], session)
        else:
            rc = _run_pipeline(segments, session)
    except ShellError as e:
        _report(e)
        rc = e.status
    session.last_status = rc
    return rc
