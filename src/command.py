# module for command resolution

from __future__ import annotations

import os
import shutil
import stat
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class BuiltinKind(Enum):
    EXIT = 'exit'
    ECHO = 'echo'
    PWD = 'pwd'
    CD = 'cd'
    TYPE = 'type'
    HISTORY = 'history'


# Built-ins that only produce text and may therefore run inside a pipeline
TEXT_BUILTINS = {BuiltinKind.ECHO, BuiltinKind.TYPE, BuiltinKind.PWD}

builtin_commands = {kind.value: kind for kind in BuiltinKind}


@dataclass(frozen=True)
class Builtin:
    kind: BuiltinKind


@dataclass(frozen=True)
class External:
    path: str


@dataclass(frozen=True)
class NotFound:
    name: str


# Discriminated union type alias
ResolvedCommand = Builtin | External | NotFound


def _is_executable(path: str) -> bool:
    try:
        st = os.stat(path)
    except OSError:
        return False
    if not stat.S_ISREG(st.st_mode):
        return False
    if os.name == 'nt':
        return True
    return os.access(path, os.X_OK)


def search_path_entries(search_path: Optional[str], cwd: str) -> List[str]:
    """Split a PATH string into absolute entries, skipping empty ones."""
    if not search_path:
        return []
    return [os.path.join(cwd, entry) for entry in search_path.split(os.pathsep) if entry]


def find_executable(name: str, search_path: Optional[str], cwd: str) -> Optional[str]:
    """Return the first executable called ``name`` on ``search_path``, or None."""
    if not name:
        return None
    if os.sep in name or (os.altsep and os.altsep in name):
        candidate = os.path.join(cwd, name)
        return candidate if _is_executable(candidate) else None
    for entry in search_path_entries(search_path, cwd):
        if os.path.isdir(entry):
            # One directory at a time so a file entry can still match in order
            found = shutil.which(name, mode=os.F_OK | os.X_OK, path=entry)
            if found:
                return found
        elif os.path.basename(entry) == name and _is_executable(entry):
            # PATH entry naming the executable itself
            return entry
    return None


def resolve(name: str, search_path: Optional[str] = None, cwd: Optional[str] = None) -> ResolvedCommand:
    """Classify ``name`` as a built-in or find it on the search path.

    ``search_path`` defaults to the current ``$PATH``; it is read on every
    call, so changes take effect without restarting.
    """
    kind = builtin_commands.get(name)
    if kind is not None:
        return Builtin(kind)
    if search_path is None:
        search_path = os.environ.get('PATH', os.defpath)
    path = find_executable(name, search_path, cwd or os.getcwd())
    if path is None:
        return NotFound(name)
    return External(path)


def list_commands(prefix: str, search_path: Optional[str], cwd: str) -> List[str]:
    """Built-in and executable names starting with ``prefix``, sorted."""
    names = {name for name in builtin_commands if name.startswith(prefix)}
    for entry in search_path_entries(search_path, cwd):
        if not os.path.isdir(entry):
            continue
        try:
            with os.scandir(entry) as it:
                for f in it:
                    if f.name.startswith(prefix) and _is_executable(f.path):
                        names.add(f.name)
        except OSError:
            continue
    return sorted(names)
