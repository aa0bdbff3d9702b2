#!/usr/bin/env python3

# Entry of tinysh

from __future__ import annotations

import argparse
import os
import sys
from typing import Callable, List, Optional

try:
    import readline  # type: ignore
except Exception:  # pragma: no cover - fallback when readline unavailable
    readline = None

READLINE_ACTIVE = bool(readline)

PROMPT = "$ "

from command import list_commands  # local modules in the same folder
from history import History
from ops import PROG, ShellSession, execute_line


class LineReader:
    """Line source for the REPL: one logical line per call, None at end of input.

    Non-blank lines are recorded in the session history before they run, so
    ``history`` lists itself like it does in bash.
    """

    def __init__(self, history: History, prompt: str = PROMPT) -> None:
        self.history = history
        self.prompt = prompt

    def read_line(self) -> Optional[str]:
        try:
            line = input(self.prompt)
        except EOFError:
            return None
        if line.strip():
            # input() already put it in readline's own buffer
            self.history.add(line, mirror=False)
        return line


def complete_command(text: str, line_before: str, session: ShellSession) -> List[str]:
    """Completion candidates for the word being typed.

    Only command positions complete: the first word of the line or the first
    word after a pipe.
    """
    head = line_before.rstrip()
    if head and not head.endswith('|'):
        return []
    return [name + ' ' for name in list_commands(text, session.search_path, session.cwd)]


def _make_completer(session: ShellSession) -> Callable[[str, int], Optional[str]]:
    matches: List[str] = []

    def completer(text: str, state: int) -> Optional[str]:
        nonlocal matches
        if state == 0:
            line = readline.get_line_buffer()
            matches = complete_command(text, line[:readline.get_begidx()], session)
        return matches[state] if state < len(matches) else None

    return completer


def setup_readline(session: ShellSession) -> None:
    if not READLINE_ACTIVE:
        return
    try:
        readline.parse_and_bind("set editing-mode emacs")
        readline.set_completer(_make_completer(session))
        readline.set_completer_delims(" \t\n|")
        if "libedit" in (readline.__doc__ or ""):
            readline.parse_and_bind("bind ^I rl_complete")
        else:
            readline.parse_and_bind("tab: complete")
    except Exception:
        pass


def load_history(history: History, histfile: Optional[str]) -> None:
    if not histfile or not os.path.isfile(histfile):
        return
    try:
        history.read_file(histfile)
        history.mark_saved()
    except OSError as e:
        sys.stderr.write(f"{PROG}: cannot read history file {histfile}: {e.strerror or e}\n")
        sys.stderr.flush()


def save_history(history: History, histfile: Optional[str]) -> None:
    if not histfile:
        return
    try:
        history.write_file(histfile)
    except OSError as e:
        sys.stderr.write(f"{PROG}: cannot write history file {histfile}: {e.strerror or e}\n")
        sys.stderr.flush()


def repl(session: ShellSession, reader: LineReader) -> int:
    while not session.exit_requested:
        try:
            line = reader.read_line()
        except KeyboardInterrupt:
            # Ctrl-C at prompt -> new line and continue
            print()
            continue
        if line is None:
            # Ctrl-D -> exit
            print()
            break
        if not line.strip():
            continue
        try:
            execute_line(line, session)
        except KeyboardInterrupt:
            # Ctrl-C while a line runs -> abandon it, keep the session
            print()
            session.last_status = 130
        except Exception as e:
            sys.stderr.write(f"{PROG}: internal error: {e}\n")
            sys.stderr.flush()
            session.last_status = 1

    if session.exit_requested:
        return session.exit_status
    return session.last_status


def parse_args(args=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="tinysh - a small interactive POSIX-ish command interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tinysh                          # Interactive prompt
  tinysh -c 'ls -1 | wc -l'       # Run one line and exit with its status
  tinysh --histfile ~/.tinysh_history
""",
    )

    parser.add_argument(
        "-c", "--command",
        metavar="LINE",
        help="Run LINE and exit with its status",
    )
    parser.add_argument(
        "--histfile",
        metavar="PATH",
        help="History file loaded at start and written at exit (default: $HISTFILE)",
    )

    return parser.parse_args(args)


def main(argv=None) -> None:
    args = parse_args(argv)
    history = History(mirror=readline.add_history if READLINE_ACTIVE else None)
    session = ShellSession(history=history)

    if args.command is not None:
        rc = execute_line(args.command, session)
        sys.exit(session.exit_status if session.exit_requested else rc)

    histfile = args.histfile or os.environ.get("HISTFILE")
    if histfile:
        histfile = os.path.expanduser(histfile)
    load_history(history, histfile)
    setup_readline(session)
    rc = repl(session, LineReader(history))
    save_history(history, histfile)
    sys.exit(rc)


if __name__ == "__main__":
    main()
