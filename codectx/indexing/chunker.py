# codectx/indexing/chunker.py

from pathlib import Path
from typing import Dict, List, Optional

from codectx.config import get_settings
from codectx.schema import Chunk
from codectx.utils.text import estimate_tokens, sha256_text

# --------------------------------------------------------------------------------
# Language names by file extension, used for the language filter.
# --------------------------------------------------------------------------------

LANGUAGES: Dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".kt": "kotlin",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".go": "go",
    ".rs": "rust",
    ".md": "markdown",
}


def detect_language(path: Path) -> str:
    return LANGUAGES.get(Path(path).suffix.lower(), "")


def relative_path(file_path: Path, root: Path) -> str:
    try:
        return file_path.relative_to(root).as_posix()
    except ValueError:
        # If file is not under root, use absolute path
        return file_path.as_posix()


def chunk_text(
    text: str,
    filepath: str,
    language: str = "",
    digest: str = "",
    max_tokens: int = 400,
    overlap_tokens: int = 50,
) -> List[Chunk]:
    """
    Split ``text`` into line-aligned chunks of at most ``max_tokens`` estimated
    tokens, each starting ``overlap_tokens`` worth of lines before the previous
    one ended. A single line longer than the budget becomes its own chunk.
    Lines are 1-based and inclusive.
    """
    lines = text.splitlines(keepends=True)
    chunks: List[Chunk] = []
    n = len(lines)
    idx = 0

    while idx < n:
        start_line = idx
        tok_count = 0
        chunk_lines: List[str] = []

        while idx < n:
            line_toks = estimate_tokens(lines[idx])
            if chunk_lines and tok_count + line_toks > max_tokens:
                break
            chunk_lines.append(lines[idx])
            tok_count += line_toks
            idx += 1

        chunks.append(
            Chunk(
                filepath=filepath,
                language=language,
                content="".join(chunk_lines),
                start_line=start_line + 1,
                end_line=idx,
                index=len(chunks),
                digest=digest,
            )
        )
        if idx >= n:
            break

        # Count lines from the end worth ~overlap_tokens; never the whole chunk.
        overlap_count = 0
        tok_acc = 0
        j = len(chunk_lines) - 1
        while j > 0 and tok_acc < overlap_tokens:
            tok_acc += estimate_tokens(chunk_lines[j])
            overlap_count += 1
            j -= 1
        idx = max(idx - overlap_count, start_line + 1)

    return chunks


def chunk_file(file_path: Path, root: Optional[Path] = None, text: Optional[str] = None) -> List[Chunk]:
    """
    Chunk the file at ``file_path`` using the configured chunker budget.
    ``filepath`` on each chunk is relative to ``root`` (posix separators), and
    ``digest`` is the sha256 of the whole file.
    """
    settings = get_settings()
    file_path = Path(file_path)
    if text is None:
        text = file_path.read_text(encoding="utf-8")
    root = Path(root) if root is not None else file_path.parent
    return chunk_text(
        text,
        filepath=relative_path(file_path, root),
        language=detect_language(file_path),
        digest=sha256_text(text),
        max_tokens=settings.retrieval_option("chunker", "max_tokens"),
        overlap_tokens=settings.retrieval_option("chunker", "overlap_tokens"),
    )
