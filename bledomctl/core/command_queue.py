"""Sequential, readiness-gated command execution."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass

from bledomctl.core.connection import ConnectionManager
from bledomctl.core.model import QueueSettings

LOGGER = logging.getLogger(__name__)


@dataclass
class _Command:
    label: str
    frame: bytes
    on_success: Callable[[], None] | None
    future: asyncio.Future[None]


class CommandQueue:
    """FIFO of frames drained by a single worker task.

    A failed command rejects its own future, forces the connection back to
    scanning, and the worker moves on to the next command.
    """

    def __init__(self, manager: ConnectionManager, *, settings: QueueSettings | None = None) -> None:
        self._manager = manager
        self._settings = settings or QueueSettings()
        self._pending: asyncio.Queue[_Command] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return self._pending.qsize()

    def enqueue(
        self,
        label: str,
        frame: bytes,
        on_success: Callable[[], None] | None = None,
    ) -> asyncio.Future[None]:
        loop = asyncio.get_running_loop()
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())

        future: asyncio.Future[None] = loop.create_future()
        self._pending.put_nowait(_Command(label=label, frame=frame, on_success=on_success, future=future))
        LOGGER.debug("Queued %s command (%s)", label, frame.hex())
        return future

    async def join(self) -> None:
        await self._pending.join()

    async def close(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

        while not self._pending.empty():
            command = self._pending.get_nowait()
            command.future.cancel()
            self._pending.task_done()

    async def _drain(self) -> None:
        while True:
            command = await self._pending.get()
            try:
                if command.future.done():
                    continue
                await self._execute(command)
            except asyncio.CancelledError:
                command.future.cancel()
                raise
            except Exception as exc:
                LOGGER.warning("%s command failed: %s", command.label, exc)
                self._manager.reset_after_failure()
                if not command.future.done():
                    command.future.set_exception(exc)
            else:
                if not command.future.done():
                    command.future.set_result(None)
            finally:
                self._pending.task_done()

    async def _execute(self, command: _Command) -> None:
        await self._manager.wait_for_ready(
            timeout_s=self._settings.ready_timeout_s,
            poll_interval_s=self._settings.poll_interval_s,
        )
        await self._manager.write(command.frame)
        if command.on_success is not None:
            command.on_success()
        LOGGER.info("%s command sent", command.label)
