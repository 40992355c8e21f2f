# codectx/retrieval/workspace.py

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from codectx.config import get_settings
from codectx.errors import SourceControlFailure
from codectx.scm.git import GitRepository, SourceControl

NO_BRANCH = "NONE"


@dataclass
class Workspace:
    """The code base a retrieval runs against: where it lives, which branch, its history."""
    root: Path
    branch: str
    git: Optional[SourceControl] = None

    @property
    def directory(self) -> str:
        return str(self.root)

    @classmethod
    async def detect(cls, path: Path) -> "Workspace":
        """Resolve ``path`` and ask git for the current branch, if it is a checkout."""
        root = Path(path).expanduser().resolve()
        settings = get_settings()
        git = GitRepository(
            root, max_commits=settings.retrieval_option("commit_history", "max_commits")
        )
        try:
            branch = await git.current_branch()
        except SourceControlFailure as e:
            logger.debug("No git branch for {}: {}", root, e)
            return cls(root=root, branch=NO_BRANCH, git=None)
        return cls(root=root, branch=branch, git=git)
