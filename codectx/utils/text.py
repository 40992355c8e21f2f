import hashlib


def estimate_tokens(text: str) -> int:
    """
    Roughly estimate tokens in a text by counting characters.
    Assumption: ~4 characters per token on average.
    """
    num_chars = len(text)
    return (num_chars + 3) // 4  # ceil


def sha256_text(*parts: str) -> str:
    """Hex sha256 over ``parts`` joined with NUL separators."""
    digest = hashlib.sha256()
    for i, part in enumerate(parts):
        if i:
            digest.update(b"\0")
        digest.update(part.encode("utf-8"))
    return digest.hexdigest()
