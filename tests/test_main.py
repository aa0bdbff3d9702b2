"""Tests for the REPL, line source and command-line entry point."""

import os
import subprocess
import sys

import main
from conftest import SRC, make_exe
from history import History
from main import LineReader, complete_command, parse_args, repl
from ops import ShellSession

MAIN_SCRIPT = SRC / "main.py"


class FakeReader:
    """Stands in for LineReader with a fixed script of lines."""

    def __init__(self, lines, history=None):
        self.lines = list(lines)
        self.history = history

    def read_line(self):
        if not self.lines:
            return None
        line = self.lines.pop(0)
        if isinstance(line, BaseException):
            raise line
        if self.history is not None and line.strip():
            self.history.add(line, mirror=False)
        return line


def run_shell(tmp_path, stdin, *args, env=None):
    if env is None:
        # Keep the user's real history file out of it
        env = {k: v for k, v in os.environ.items() if k != "HISTFILE"}
    return subprocess.run(
        [sys.executable, str(MAIN_SCRIPT), *args],
        input=stdin,
        capture_output=True,
        text=True,
        cwd=str(tmp_path),
        env=env,
        timeout=20,
    )


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.command is None
        assert args.histfile is None

    def test_command_and_histfile(self):
        args = parse_args(["-c", "echo hi", "--histfile", "/tmp/h"])
        assert args.command == "echo hi"
        assert args.histfile == "/tmp/h"


class TestLineReader:
    def test_records_non_blank_lines(self, monkeypatch):
        feed = iter(["echo a", "   ", "pwd"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(feed))
        history = History()
        reader = LineReader(history)
        assert reader.read_line() == "echo a"
        assert reader.read_line() == "   "
        assert reader.read_line() == "pwd"
        assert history.entries == ["echo a", "pwd"]

    def test_end_of_input(self, monkeypatch):
        def raise_eof(prompt=""):
            raise EOFError
        monkeypatch.setattr("builtins.input", raise_eof)
        assert LineReader(History()).read_line() is None


class TestRepl:
    def test_runs_until_exit(self, session, tmp_path):
        reader = FakeReader(["echo one > a.txt", "", "exit 4", "echo never > b.txt"])
        assert repl(session, reader) == 4
        assert (tmp_path / "a.txt").read_text() == "one\n"
        assert not (tmp_path / "b.txt").exists()

    def test_end_of_input_returns_last_status(self, session):
        assert repl(session, FakeReader(["false"])) == 1

    def test_errors_do_not_stop_the_loop(self, session, tmp_path, capfd):
        reader = FakeReader(["echo 'open", "nosuchcmd-xyz", "echo a | cd x", "echo ok > ok.txt", "exit"])
        assert repl(session, reader) == 0
        err = capfd.readouterr().err
        assert "unterminated" in err
        assert "nosuchcmd-xyz: command not found" in err
        assert (tmp_path / "ok.txt").read_text() == "ok\n"

    def test_ctrl_c_at_prompt_continues(self, session, tmp_path):
        reader = FakeReader([KeyboardInterrupt(), "echo after > after.txt", "exit"])
        assert repl(session, reader) == 0
        assert (tmp_path / "after.txt").exists()

    def test_history_lists_itself(self, session, capfd):
        reader = FakeReader(["echo hi", "history", "exit"], history=session.history)
        repl(session, reader)
        out = capfd.readouterr().out
        assert out.endswith("    1  echo hi\n    2  history\n")

    def test_ctrl_c_during_a_line_keeps_the_session(self, session, monkeypatch, tmp_path):
        real_execute = main.execute_line

        def interrupted(line, sess):
            if line == "slow":
                raise KeyboardInterrupt
            return real_execute(line, sess)

        monkeypatch.setattr(main, "execute_line", interrupted)
        reader = FakeReader(["slow", "echo still-here > s.txt"])
        repl(session, reader)
        assert (tmp_path / "s.txt").read_text() == "still-here\n"

    def test_ctrl_c_status(self, session, monkeypatch):
        def interrupted(line, sess):
            raise KeyboardInterrupt
        monkeypatch.setattr(main, "execute_line", interrupted)
        assert repl(session, FakeReader(["slow"])) == 130

    def test_internal_error_is_reported(self, session, monkeypatch, capfd):
        def boom(line, sess):
            raise KeyError("kaboom")
        monkeypatch.setattr(main, "execute_line", boom)
        assert repl(session, FakeReader(["anything"])) == 1
        assert "tinysh: internal error:" in capfd.readouterr().err


class TestCompletion:
    def test_command_position(self, session, bindir):
        make_exe(bindir, "extool")
        session.env["PATH"] = str(bindir)
        assert complete_command("ex", "", session) == ["exit ", "extool "]
        assert complete_command("ex", "echo a | ", session) == ["exit ", "extool "]

    def test_argument_position(self, session):
        assert complete_command("ex", "echo ", session) == []


class TestEntryPoint:
    def test_piped_session(self, tmp_path):
        result = run_shell(tmp_path, "echo hello | cat\ncd nowhere\nexit 3\n")
        assert result.returncode == 3
        assert result.stdout.count("hello\n") == 1
        assert "cd: nowhere: No such file or directory" in result.stderr

    def test_large_builtin_output_through_two_stages(self, tmp_path):
        # Far more than a pipe buffer holds; must not hang
        payload = "a" * 300000
        result = run_shell(tmp_path, f"echo {payload} | cat | wc -c\nexit\n")
        assert result.returncode == 0
        assert "300001" in result.stdout.split()

    def test_end_of_input_exits(self, tmp_path):
        result = run_shell(tmp_path, "true\n")
        assert result.returncode == 0

    def test_command_flag(self, tmp_path):
        result = run_shell(tmp_path, "", "-c", "echo from-c | cat")
        assert result.returncode == 0
        assert result.stdout.endswith("from-c\n")
        assert "$ " not in result.stdout
        result = run_shell(tmp_path, "", "-c", "exit 5")
        assert result.returncode == 5

    def test_histfile_loaded_and_saved(self, tmp_path):
        histfile = tmp_path / "hist"
        histfile.write_text("echo earlier\n")
        result = run_shell(tmp_path, "history\necho now\nexit\n", "--histfile", str(histfile))
        assert "    1  echo earlier" in result.stdout
        assert histfile.read_text() == "echo earlier\nhistory\necho now\nexit\n"
