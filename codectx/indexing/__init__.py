"""Chunking and index building for a workspace"""

from .chunker import chunk_file, chunk_text, detect_language
from .indexer import CodebaseIndexer, IndexReport

__all__ = ["chunk_file", "chunk_text", "detect_language", "CodebaseIndexer", "IndexReport"]
