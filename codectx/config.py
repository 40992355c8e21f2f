from __future__ import annotations
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Dict, Any
import yaml


def _default_home() -> Path:
    return Path.home() / ".codectx"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"  # Allow extra fields from config files
    )

    openai_api_key: str = Field(default="")
    codectx_home: Path = Field(default_factory=_default_home)
    log_level: str = Field(default="WARNING")

    # Retrieval configuration
    retrieval: Dict[str, Any] = Field(default_factory=lambda: {
        "top_n": 10,
        "fts": {
            "artifact_id": "fts",
            "bm25_threshold": -2.5
        },
        "commit_history": {
            "threshold": 0.6,
            "max_commits": 1000
        },
        "chunker": {
            "max_tokens": 400,
            "overlap_tokens": 50
        },
        "embeddings": {
            "collection_name": "codebase",
            "model": "text-embedding-3-small",
            "dimensions": 384
        },
        "file_patterns": [
            "*.py", "*.js", "*.ts", "*.jsx", "*.tsx", "*.java", "*.kt",
            "*.cpp", "*.c", "*.h", "*.go", "*.rs", "*.md"
        ],
        "skip_dirs": ["node_modules", "venv", "__pycache__", "dist", "build", "target"]
    })

    @property
    def index_dir(self) -> Path:
        return Path(self.codectx_home) / "index"

    @property
    def catalog_path(self) -> Path:
        return self.index_dir / "codectx-index.sqlite"

    @property
    def fts_path(self) -> Path:
        return self.index_dir / "fts.sqlite"

    @property
    def embeddings_dir(self) -> Path:
        return Path(self.codectx_home) / "embeddings"

    def retrieval_option(self, section: str, key: str | None = None) -> Any:
        """
        Read ``retrieval[section]`` (or ``retrieval[section][key]``).
        A config file that only overrides part of the retrieval block keeps the
        built-in defaults for everything it leaves out.
        """
        defaults = Settings.model_fields["retrieval"].default_factory()
        value = self.retrieval.get(section, defaults[section])
        if key is None:
            return value
        if isinstance(value, dict) and key in value:
            return value[key]
        return defaults[section][key]


def _load_yaml(path: Path | None):
    if path and path.exists():
        with open(path, "r") as fh:
            return yaml.safe_load(fh) or {}
    return {}


@lru_cache
def get_settings(config_path: Path | None = None) -> Settings:
    file_vals = _load_yaml(config_path or Path(".codectx.yml"))
    return Settings(**file_vals)
