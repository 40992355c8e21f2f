# codectx/scm/git.py

import asyncio
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel

from codectx.errors import SourceControlFailure

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"


class Commit(BaseModel):
    hash: str
    message: str


class SourceControl(ABC):
    """What retrieval needs from version control."""

    @abstractmethod
    async def get_history_commits(self) -> List[Commit]:
        """All commits reachable from HEAD, newest first."""

    @abstractmethod
    async def get_change_by_hash(self, hash: str) -> str:
        """The diff introduced by ``hash``; "" when there is nothing to show."""


class GitRepository(SourceControl):
    """``git`` command line backed source control for a working tree."""

    def __init__(self, root: Path, max_commits: Optional[int] = None, timeout: float = 30.0):
        self.root = Path(root)
        self.max_commits = max_commits
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        cmd = ["git", "-C", str(self.root), *args]
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise SourceControlFailure("git executable not found") from e
        except subprocess.TimeoutExpired as e:
            raise SourceControlFailure(f"git {args[0]} timed out after {self.timeout}s") from e

        if proc.returncode != 0:
            err = proc.stderr.decode("utf-8", errors="replace").strip()
            raise SourceControlFailure(f"git {args[0]} failed ({proc.returncode}): {err}")
        return proc.stdout.decode("utf-8", errors="replace")

    async def get_history_commits(self) -> List[Commit]:
        args = ["log", f"--format=%H{_FIELD_SEP}%B{_RECORD_SEP}"]
        if self.max_commits:
            args.append(f"--max-count={self.max_commits}")
        out = await asyncio.to_thread(self._run, *args)

        commits: List[Commit] = []
        for record in out.split(_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            hash_, _, message = record.partition(_FIELD_SEP)
            commits.append(Commit(hash=hash_.strip(), message=message.strip()))
        logger.debug("Read {} commits from {}", len(commits), self.root)
        return commits

    async def get_change_by_hash(self, hash: str) -> str:
        # --format= drops the header so a commit without a diff yields ""
        out = await asyncio.to_thread(
            self._run, "show", "--format=", "--no-color", "--no-ext-diff", hash
        )
        return out.strip("\n")

    async def current_branch(self) -> str:
        out = await asyncio.to_thread(self._run, "rev-parse", "--abbrev-ref", "HEAD")
        return out.strip()
