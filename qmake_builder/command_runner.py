"""Utilities for executing build commands with optional dry-run support."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, TextIO
import codecs
import os
import shlex
import subprocess
import sys
import threading

from .errors import QmakeBuilderError


_TERMINATE_GRACE_SECONDS = 5.0
_READ_CHUNK_SIZE = 65536


def tokenize(line: str) -> List[str]:
    """Split *line* on whitespace, keeping quoted substrings as single arguments.

    Backslashes are not escape characters so Windows paths pass through intact.
    """

    lexer = shlex.shlex(line, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    lexer.escape = ""
    return list(lexer)


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class CommandInterrupted(QmakeBuilderError):
    """Raised when a running command was terminated because of a cancellation request."""

    def __init__(self, command: Sequence[str]):
        super().__init__(f"Command interrupted: {' '.join(map(shlex.quote, command))}")
        self.command = list(command)


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
        output: TextIO | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class _OutputCopier:
    """Copies raw child output to a text sink.

    Bytes go to the sink's binary ``buffer`` unchanged when it has one;
    in-memory text sinks receive incrementally decoded text instead.
    """

    def __init__(self, sink: TextIO) -> None:
        self._sink = sink
        self._binary = getattr(sink, "buffer", None)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        # Text already written through the wrapper must land before raw bytes.
        sink.flush()

    def write(self, chunk: bytes) -> None:
        if self._binary is not None:
            self._binary.write(chunk)
            self._binary.flush()
            return
        text = self._decoder.decode(chunk)
        if text:
            self._sink.write(text)
            self._sink.flush()

    def close(self) -> None:
        if self._binary is None:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._sink.write(tail)
                self._sink.flush()


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    Output of the child (stdout and stderr merged) is copied to ``output``
    chunk by chunk as it arrives, without waiting for line ends. The call
    blocks until the child exits.
    """

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=_TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def _watch_cancel(
        self,
        process: subprocess.Popen,
        cancel_event: threading.Event,
        finished: threading.Event,
    ) -> None:
        while not finished.is_set():
            if cancel_event.wait(0.1):
                self._terminate(process)
                return

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
        output: TextIO | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        copier = _OutputCopier(output if output is not None else sys.stdout)
        process = subprocess.Popen(
            list(command),
            cwd=str(cwd) if cwd else None,
            env=self._merge_environment(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )

        finished = threading.Event()
        watcher: threading.Thread | None = None
        if cancel_event is not None:
            watcher = threading.Thread(
                target=self._watch_cancel,
                args=(process, cancel_event, finished),
                daemon=True,
            )
            watcher.start()

        try:
            assert process.stdout is not None
            while True:
                chunk = process.stdout.read1(_READ_CHUNK_SIZE)
                if not chunk:
                    break
                copier.write(chunk)
            copier.close()
            returncode = process.wait()
        except KeyboardInterrupt:
            self._terminate(process)
            raise CommandInterrupted(command) from None
        finally:
            finished.set()
            if watcher is not None:
                watcher.join()
            if process.stdout is not None:
                process.stdout.close()

        if cancel_event is not None and cancel_event.is_set():
            raise CommandInterrupted(command)

        return CommandResult(command=command, returncode=returncode)


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``returncodes`` maps a formatted command line to the exit code the fake
    execution reports; unlisted commands succeed.
    """

    def __init__(self, returncodes: Mapping[str, int] | None = None) -> None:
        self.commands: List[RecordedCommand] = []
        self._returncodes = dict(returncodes or {})

    @staticmethod
    def _record_entry(
        *,
        command: Sequence[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
    ) -> RecordedCommand:
        return RecordedCommand(
            command=list(command),
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env else {},
            note=note,
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
        output: TextIO | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        self.commands.append(self._record_entry(command=command, cwd=cwd, env=env, note=note))
        returncode = self._returncodes.get(self.format_command(command), 0)
        return CommandResult(command=command, returncode=returncode)

    def iter_commands(self) -> Iterable[RecordedCommand]:
        return iter(self.commands)

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterable[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            cmd = self.format_command(record.command)
            cwd = record.cwd or default_cwd
            note = record.note
            parts: List[str] = ["[dry-run]"]
            if note:
                parts.append(note)
            if cwd:
                parts.append(f"(cwd={cwd})")
            parts.append(cmd)
            yield " ".join(parts)
