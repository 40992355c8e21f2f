import asyncio
from pathlib import Path
import portalocker

def ensure_dir(p: Path):
    p.mkdir(parents=True, exist_ok=True)

class FileLock:
    """
    Exclusive inter-process lock on ``<target>.lock``.
    Usable as a plain or an async context manager; the async form waits for
    the lock on a worker thread so the event loop keeps running.
    """

    def __init__(self, target: Path):
        self.target = Path(target).with_suffix(".lock")
        self._fh = None

    def __enter__(self):
        ensure_dir(self.target.parent)
        self._fh = open(self.target, "w")
        portalocker.lock(self._fh, portalocker.LOCK_EX)
        return self

    def __exit__(self, exc_type, exc, tb):
        portalocker.unlock(self._fh)
        self._fh.close()
        self._fh = None

    async def __aenter__(self):
        return await asyncio.to_thread(self.__enter__)

    async def __aexit__(self, exc_type, exc, tb):
        self.__exit__(exc_type, exc, tb)
