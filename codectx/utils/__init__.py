# codectx/utils/__init__.py

from .fs import ensure_dir, FileLock
from .log import configure_logging
from .text import estimate_tokens, sha256_text

__all__ = ["ensure_dir", "FileLock", "configure_logging", "estimate_tokens", "sha256_text"]
