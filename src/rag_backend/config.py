"""Configuration management for the retrieval backend using Hydra.

All configuration is loaded from YAML files in conf/pharmarag/.
This module provides typed config objects and validation.
"""

from pathlib import Path

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field

from rag_backend.chunking import ChunkingConfig
from rag_backend.embedding import EmbeddingConfig
from rag_backend.generation import GenerationConfig
from rag_backend.retrieval import RetrievalConfig


class IndexConfig(BaseModel):
    """Vector index configuration.

    Attributes:
        metric: Distance metric used to build and query the index
    """

    metric: str = Field(default="cosine", pattern="^(cosine|l2)$")


class UploadConfig(BaseModel):
    """Document upload limits.

    Attributes:
        max_file_size_bytes: Largest accepted PDF (default 10 MiB)
    """

    max_file_size_bytes: int = Field(default=10 * 1024 * 1024, ge=1)


class RagConfig(BaseModel):
    """Top-level configuration for the retrieval system."""

    chunking: ChunkingConfig
    embedding: EmbeddingConfig
    index: IndexConfig = Field(default_factory=IndexConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)


def load_config(
    config_name: str = "default",
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> RagConfig:
    """Load configuration from Hydra YAML files.

    Args:
        config_name: Name of config file (without .yaml extension)
        config_path: Path to config directory (defaults to conf/pharmarag/)
        overrides: List of config overrides (e.g., ["retrieval.top_k=8"])

    Returns:
        Validated configuration object

    Example:
        >>> config = load_config("default", overrides=["index.metric=l2"])
        >>> config.index.metric
        'l2'
    """
    if config_path is None:
        repo_root = Path(__file__).parent.parent.parent
        config_path = repo_root / "conf" / "pharmarag"

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config directory not found: {config_path}\n" f"Create it with: mkdir -p {config_path}"
        )

    with initialize_config_dir(config_dir=str(config_path), version_base=None, job_name="pharmarag"):
        cfg: DictConfig = compose(config_name=config_name, overrides=overrides or [])

    config_dict = OmegaConf.to_container(cfg, resolve=True)
    return RagConfig(**config_dict)  # type: ignore


def create_default_config() -> dict[str, dict[str, object]]:
    """Create a default configuration dictionary for bootstrapping.

    Example:
        >>> import yaml
        >>> config = create_default_config()
        >>> with open("conf/pharmarag/default.yaml", "w") as f:
        ...     yaml.dump(config, f)
    """
    return {
        "chunking": {
            "chunk_size": 400,
            "overlap": 50,
            "tokenizer": "cl100k_base",
            "preserve_boundaries": True,
        },
        "embedding": {
            "model": "openai/text-embedding-3-small",
            "dimensions": 1536,
            "batch_size": 100,
            "max_retries": 3,
            "timeout_seconds": 30.0,
            "api_key": "${oc.env:OPENAI_API_KEY,null}",
            "base_url": None,
        },
        "index": {
            "metric": "cosine",
        },
        "retrieval": {
            "top_k": 4,
            "min_score": None,
            "history_messages": 10,
        },
        "generation": {
            "model": "openai/gpt-4o-mini",
            "temperature": 0.3,
            "max_tokens": 2048,
            "max_retries": 2,
            "timeout_seconds": 60.0,
            "api_key": "${oc.env:OPENAI_API_KEY,null}",
            "base_url": None,
        },
        "upload": {
            "max_file_size_bytes": 10485760,
        },
    }
