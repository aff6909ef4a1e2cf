"""Subprocess runner with merged output capture and failure diagnostics.

Two modes:

- passthrough (``stdio="inherit"``): the child owns the terminal; the
  renderer is suspended until it exits.
- capture (default): stdout and stderr are appended to one byte buffer in the
  order chunks arrive. On a non-zero exit the buffer is written to
  ``<tmp>/<prefix>XXXX/error.log`` (a fresh directory per failure) and a short
  report is attached to the owning task.

A ``line_handler`` receives every complete line together with a
:class:`SpawnCompletion`; a coroutine handler is awaited before the next
line. The first ``resolve()``/``reject()`` settles the call, later ones
are ignored. The call returns as soon as it is settled, even if the
process is still running; such processes keep being drained in the
background until :meth:`ProcessRunner.drain` is awaited. If the process
exits before the handler settled, exit code 0 resolves and any other code
rejects exactly like the handler-less path.
"""

from __future__ import annotations

import asyncio
import errno as errno_module
import inspect
import logging
import os
import signal as signal_module
import tempfile
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path
from typing import Any, Literal

from dev_toolkit.engine.errors import ProcessExitError, ProcessSpawnError

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 65_536

StdioMode = Literal["pipe", "inherit"]
Reporter = Callable[[list[str]], None]
StatusHook = Callable[[str], None]


class SpawnCompletion:
    """Settles one line-handled spawn; the first completion wins."""

    def __init__(self, future: asyncio.Future[None]) -> None:
        self._future = future

    @property
    def settled(self) -> bool:
        return self._future.done()

    def resolve(self) -> bool:
        """Resolve the spawn call; returns False if it was already settled."""

        if self._future.done():
            return False
        self._future.set_result(None)
        return True

    def reject(self, error: BaseException | str) -> bool:
        """Reject the spawn call; returns False if it was already settled."""

        if self._future.done():
            return False
        if isinstance(error, str):
            error = RuntimeError(error)
        self._future.set_exception(error)
        return True

    async def wait(self) -> None:
        await asyncio.shield(self._future)

    def abandon(self) -> None:
        if not self._future.done():
            self._future.cancel()


LineHandler = Callable[[str, SpawnCompletion], Any]


class ProcessRunner:
    """Spawns external commands for the task engine."""

    def __init__(
        self,
        *,
        tmp_dir: Path | None = None,
        error_log_prefix: str = "spawn-error-",
        suspend: Callable[[], AbstractContextManager[None]] = nullcontext,
    ) -> None:
        self._tmp_dir = tmp_dir
        self._error_log_prefix = error_log_prefix
        self._suspend = suspend
        self._background: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Processes still drained in the background."""

        return len(self._background)

    async def drain(self) -> None:
        """Wait for processes that outlived their settled spawn call."""

        while self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)

    async def spawn(  # noqa: PLR0913
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        stdio: StdioMode = "pipe",
        line_handler: LineHandler | None = None,
        on_status: StatusHook | None = None,
        report: Reporter | None = None,
    ) -> None:
        """Run ``command`` and raise :class:`ProcessError` unless it succeeds.

        ``on_status`` receives each line when no ``line_handler`` is given
        (verbose progress); ``report`` receives the failure report lines.
        """

        arguments = tuple(str(arg) for arg in args)
        resolved_cwd = Path(cwd) if cwd is not None else Path.cwd()
        environment = dict(env) if env is not None else None
        reporter = report or (lambda _lines: None)

        if stdio == "inherit":
            await self._run_passthrough(command, arguments, resolved_cwd, environment, reporter)
            return
        if stdio != "pipe":
            raise ValueError(f"Unsupported stdio mode: {stdio!r}")

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *arguments,
                cwd=resolved_cwd,
                env=environment,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            failure = _spawn_failure(error, command, arguments, resolved_cwd)
            reporter(failure.report)
            raise failure from error

        logger.debug("Spawned pid=%s: %s", process.pid, " ".join((command, *arguments)))
        loop = asyncio.get_running_loop()
        completion = SpawnCompletion(loop.create_future())
        handler = line_handler
        if handler is None and on_status is not None:
            status_hook = on_status

            def handler(line: str, _completion: SpawnCompletion) -> None:
                status_hook(line)

        watcher = asyncio.create_task(
            self._watch(
                process=process,
                command=command,
                arguments=arguments,
                cwd=resolved_cwd,
                completion=completion,
                line_handler=handler,
                reporter=reporter,
            ),
        )
        self._background.add(watcher)
        watcher.add_done_callback(self._background.discard)
        watcher.add_done_callback(lambda done: _reject_on_crash(done, completion))
        await completion.wait()

    async def _run_passthrough(
        self,
        command: str,
        arguments: tuple[str, ...],
        cwd: Path,
        environment: dict[str, str] | None,
        reporter: Reporter,
    ) -> None:
        with self._suspend():
            try:
                process = await asyncio.create_subprocess_exec(
                    command,
                    *arguments,
                    cwd=cwd,
                    env=environment,
                )
            except OSError as error:
                failure = _spawn_failure(error, command, arguments, cwd)
                reporter(failure.report)
                raise failure from error
            returncode = await process.wait()
        if returncode != 0:
            failure = _exit_failure(command, arguments, cwd, returncode, log_file=None)
            reporter(failure.report)
            raise failure

    async def _watch(  # noqa: PLR0913
        self,
        *,
        process: asyncio.subprocess.Process,
        command: str,
        arguments: tuple[str, ...],
        cwd: Path,
        completion: SpawnCompletion,
        line_handler: LineHandler | None,
        reporter: Reporter,
    ) -> None:
        captured = bytearray()

        async def deliver(raw: bytes) -> None:
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            if not line or line_handler is None:
                return
            try:
                result = line_handler(line, completion)
                if inspect.isawaitable(result):
                    await result
            except Exception as error:  # noqa: BLE001
                if not completion.reject(error):
                    logger.warning("Line handler failed after completion: %s", error)

        async def pump(stream: asyncio.StreamReader | None) -> None:
            if stream is None:
                return
            pending = b""
            while chunk := await stream.read(_READ_CHUNK_BYTES):
                captured.extend(chunk)
                pending += chunk
                *lines, pending = pending.split(b"\n")
                for raw in lines:
                    await deliver(raw)
            if pending:
                await deliver(pending)

        await asyncio.gather(pump(process.stdout), pump(process.stderr))
        returncode = await process.wait()
        if returncode == 0:
            completion.resolve()
            return

        log_file = self._write_error_log(bytes(captured))
        failure = _exit_failure(command, arguments, cwd, returncode, log_file=log_file)
        logger.info("%s (log: %s)", failure, log_file)
        reporter(failure.report)
        if not completion.reject(failure):
            logger.warning(
                "%s exited with %s after its spawn call was settled (log: %s)",
                failure.command_line,
                returncode,
                log_file,
            )

    def _write_error_log(self, data: bytes) -> Path:
        directory = Path(tempfile.mkdtemp(prefix=self._error_log_prefix, dir=self._tmp_dir))
        log_file = directory / "error.log"
        log_file.write_bytes(data)
        return log_file


def _reject_on_crash(done: asyncio.Task[None], completion: SpawnCompletion) -> None:
    if done.cancelled():
        completion.abandon()
        return
    error = done.exception()
    if error is not None and not completion.reject(error):
        logger.warning("Process watcher failed after completion: %s", error)


def _exit_failure(
    command: str,
    arguments: tuple[str, ...],
    cwd: Path,
    returncode: int,
    *,
    log_file: Path | None,
) -> ProcessExitError:
    signal_name: str | None = None
    if returncode < 0:
        try:
            signal_name = signal_module.Signals(-returncode).name
        except ValueError:
            signal_name = str(-returncode)
    report = [
        f"signal: {signal_name}" if signal_name is not None else f"code: {returncode}",
        f"command: {' '.join((command, *arguments))}",
        f"cwd: {cwd}",
    ]
    if log_file is not None:
        report.append(f"log_file: {log_file}")
    return ProcessExitError(
        command=command,
        args=arguments,
        cwd=cwd,
        returncode=returncode,
        signal=signal_name,
        log_file=log_file,
        report=report,
    )


def _spawn_failure(
    error: OSError,
    command: str,
    arguments: tuple[str, ...],
    cwd: Path,
) -> ProcessSpawnError:
    code = errno_module.errorcode.get(error.errno) if error.errno is not None else None
    path = error.filename if error.filename is not None else command
    report = [
        line
        for line in (
            f"errno: {error.errno}" if error.errno is not None else None,
            f"code: {code}" if code else None,
            f"syscall: spawn {command}",
            f"path: {os.fspath(path)}" if path else None,
            f"spawnargs: [{', '.join(arguments)}]",
        )
        if line is not None
    ]
    return ProcessSpawnError(
        f"Failed to start {command}: {error.strerror or error}",
        command=command,
        args=arguments,
        cwd=cwd,
        errno=error.errno,
        code=code,
        path=os.fspath(path) if path else None,
        report=report,
    )

