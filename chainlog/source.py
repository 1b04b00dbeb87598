"""Event sources that deliver raw byte chunks to the pipeline."""

import asyncio
import logging
import os
import shlex

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


class CommandSource:
    """Spawns a command and yields its stdout in chunks.

    stderr lines are logged as warnings. Iteration ends when stdout closes;
    the exit status is logged. A command that cannot be spawned raises OSError.
    """

    def __init__(self, command: str | list[str]):
        self._argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not self._argv:
            raise ValueError("command must not be empty")
        self._process: asyncio.subprocess.Process | None = None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def _forward_stderr(self, stream: asyncio.StreamReader):
        while True:
            line = await stream.readline()
            if not line:
                return
            logger.warning("[%s] %s", self._argv[0], line.decode(errors="replace").rstrip())

    async def __aiter__(self):
        self._process = await asyncio.create_subprocess_exec(
            *self._argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        logger.info("Started %s (pid %d)", " ".join(self._argv), self._process.pid)
        stderr_task = asyncio.create_task(self._forward_stderr(self._process.stderr))
        exhausted = False
        try:
            while True:
                chunk = await self._process.stdout.read(CHUNK_SIZE)
                if not chunk:
                    exhausted = True
                    break
                yield chunk
        finally:
            if not exhausted:
                self.terminate()
            code = await self._process.wait()
            await stderr_task
            if code < 0:
                logger.warning("%s was killed by signal %d", self._argv[0], -code)
            elif code != 0:
                logger.warning("%s exited with code %d", self._argv[0], code)
            else:
                logger.info("%s ended normally", self._argv[0])

    def terminate(self):
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass


class _TailHandler(FileSystemEventHandler):
    """Reads bytes appended to one file and hands them to the event loop."""

    def __init__(self, path: str, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue,
                 from_start: bool):
        super().__init__()
        self._path = os.path.abspath(path)
        self._loop = loop
        self._queue = queue
        self._fh = None
        self._offset = 0 if from_start else self._current_size()

    def _current_size(self) -> int:
        try:
            return os.stat(self._path).st_size
        except FileNotFoundError:
            return 0

    def read_new(self):
        size = self._current_size()
        if size < self._offset:
            logger.info("File truncated: %s", self._path)
            self._offset = 0
        if size == self._offset:
            return
        try:
            with open(self._path, "rb") as fh:
                fh.seek(self._offset)
                data = fh.read()
        except FileNotFoundError:
            return
        self._offset += len(data)
        if data:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, data)

    def on_modified(self, event):
        if not event.is_directory and os.path.abspath(event.src_path) == self._path:
            self.read_new()

    def on_created(self, event):
        if not event.is_directory and os.path.abspath(event.src_path) == self._path:
            logger.info("Watched file created: %s", self._path)
            self._offset = 0
            self.read_new()


class FileSource:
    """Follows a file with a watchdog observer and yields appended bytes."""

    def __init__(self, path: str, from_start: bool = False):
        self._path = path
        self._from_start = from_start
        self._closed = asyncio.Event()

    def close(self):
        self._closed.set()

    async def __aiter__(self):
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        handler = _TailHandler(self._path, loop, queue, self._from_start)
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)

        handler.read_new()
        observer = Observer()
        observer.schedule(handler, directory, recursive=False)
        observer.start()
        logger.info("Following %s", self._path)

        closed = asyncio.create_task(self._closed.wait())
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    {getter, closed}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter not in done:
                    getter.cancel()
                    break
                yield getter.result()
        finally:
            closed.cancel()
            observer.stop()
            await loop.run_in_executor(None, observer.join, 5)
