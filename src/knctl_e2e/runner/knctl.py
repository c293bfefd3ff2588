"""Runs the knctl CLI under test as a subprocess."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import io
import logging
import os
import re
import signal
from dataclasses import dataclass
from typing import Callable, TextIO

import pytest

from knctl_e2e.config.defaults import KNCTL_BINARY

logger = logging.getLogger(__name__)

FailureReporter = Callable[[str], None]

_READ_CHUNK = 4096

# Seconds an abandoned child gets to exit after SIGINT before it is killed.
_INTERRUPT_GRACE = 5.0

_REDACTED = "-redacted-"


class ProcessExecutionError(RuntimeError):
    """The CLI could not be spawned or exited non-zero."""

    def __init__(self, stderr: str, cause: str, stdout: str = "") -> None:
        super().__init__(f"Execution error: stderr: '{stderr}' error: '{cause}'")
        self.stderr = stderr
        self.cause = cause
        self.stdout = stdout

    def redacted(self, values: list[str]) -> str:
        """Message with every non-empty value in *values* scrubbed from stderr."""
        stderr = self.stderr
        secrets = sorted({v for v in values if v}, key=len, reverse=True)
        if secrets:
            stderr = re.sub("|".join(map(re.escape, secrets)), _REDACTED, stderr)
        return f"Execution error: stderr: '{stderr}' error: '{self.cause}'"


@dataclass
class RunOpts:
    """Per-invocation options for ``Knctl.run_with_opts``."""

    no_namespace: bool = False
    allow_error: bool = False
    stdout_writer: TextIO | None = None
    cancel: asyncio.Event | None = None
    redact: bool = False


def _fail_test(message: str) -> None:
    pytest.fail(message, pytrace=False)


async def _copy_stream(stream: asyncio.StreamReader, sink: TextIO) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        text = decoder.decode(chunk)
        if text:
            sink.write(text)
    tail = decoder.decode(b"", final=True)
    if tail:
        sink.write(tail)


async def _wait_or_interrupt(proc: asyncio.subprocess.Process, cancel: asyncio.Event) -> None:
    """Wait for *proc* to exit, sending SIGINT once if *cancel* fires first.

    Returns only after the process has exited.
    """
    exited = asyncio.ensure_future(proc.wait())
    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {exited, cancelled}, return_when=asyncio.FIRST_COMPLETED,
        )
        if cancelled in done and not exited.done():
            logger.debug("Cancellation requested, interrupting pid %s", proc.pid)
            # Already reaped between the wait and the signal.
            with contextlib.suppress(ProcessLookupError):
                proc.send_signal(signal.SIGINT)
        await exited
    finally:
        exited.cancel()
        cancelled.cancel()


async def _reap(proc: asyncio.subprocess.Process, readers: list[asyncio.Future]) -> None:
    """Stop *proc* and its output readers after the call was abandoned."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.send_signal(signal.SIGINT)
        try:
            await asyncio.wait_for(proc.wait(), _INTERRUPT_GRACE)
        except asyncio.TimeoutError:
            logger.debug("pid %s ignored SIGINT, killing", proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
    for reader in readers:
        reader.cancel()
    await asyncio.gather(*readers, return_exceptions=True)


def _exit_cause(returncode: int) -> str:
    if returncode < 0:
        try:
            return f"signal: {signal.Signals(-returncode).name}"
        except ValueError:
            return f"signal: {-returncode}"
    return f"exit status {returncode}"


class Knctl:
    """Runs knctl against a namespace bound at construction.

    Failures abort the current test through *fail* (``pytest.fail`` by
    default) unless ``RunOpts.allow_error`` is set, in which case the
    ``ProcessExecutionError`` is raised to the caller instead.
    """

    def __init__(
        self,
        namespace: str,
        *,
        binary: str = KNCTL_BINARY,
        fail: FailureReporter | None = None,
    ) -> None:
        self.namespace = namespace
        self._binary = binary
        self._program = os.path.basename(binary)
        self._fail = fail or _fail_test

    async def run(self, args: list[str]) -> str:
        return await self.run_with_opts(args, RunOpts())

    async def run_with_opts(self, args: list[str], opts: RunOpts | None = None) -> str:
        """Run knctl with *args* and return its stdout.

        stdout is empty when ``opts.stdout_writer`` receives the output.
        """
        opts = opts or RunOpts()
        args = list(args)
        if not opts.no_namespace:
            args += ["-n", self.namespace]

        logger.debug("Running '%s'...", self.cmd_desc(args, opts))

        stdout_buf = io.StringIO()
        stderr_buf = io.StringIO()
        error: ProcessExecutionError | None = None

        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            error = ProcessExecutionError(stderr="", cause=str(e))
        else:
            readers = [
                asyncio.ensure_future(_copy_stream(proc.stdout, opts.stdout_writer or stdout_buf)),
                asyncio.ensure_future(_copy_stream(proc.stderr, stderr_buf)),
            ]
            try:
                if opts.cancel is not None:
                    await _wait_or_interrupt(proc, opts.cancel)
                await asyncio.gather(*readers)
                await proc.wait()
            except BaseException:
                # Caller cancelled or the stdout sink failed; leave nothing running.
                await _reap(proc, readers)
                raise

            if proc.returncode != 0:
                error = ProcessExecutionError(
                    stderr=stderr_buf.getvalue(),
                    cause=_exit_cause(proc.returncode),
                    stdout=stdout_buf.getvalue(),
                )

        if error is not None:
            if not opts.allow_error:
                detail = error.redacted(args) if opts.redact else str(error)
                self._fail(
                    f"Failed to successfully execute '{self.cmd_desc(args, opts)}': {detail}"
                )
            raise error

        return stdout_buf.getvalue()

    def cmd_desc(self, args: list[str], opts: RunOpts) -> str:
        if opts.redact:
            return f"{self._program} {_REDACTED}"
        return f"{self._program} {' '.join(args)}"
