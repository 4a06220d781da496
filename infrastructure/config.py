"""
Configuration for the workflow graph core.

Configuration is loaded once from `config/workflow_graph.toml` and held as a
frozen msgspec Struct. Components receive the section they need; nothing
re-reads the file at call time.

Usage:
    from infrastructure.config import get_config

    config = get_config()
    config.id_generation.max_retries  # 10

Lookup order for the file:
    1. Explicit `path` argument
    2. WORKFLOW_GRAPH_CONFIG environment variable
    3. config/workflow_graph.toml next to this package
"""
import os
import tomllib
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import msgspec


CONFIG_ENV_VAR = "WORKFLOW_GRAPH_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "workflow_graph.toml"


# =============================================================================
# CONFIG SECTIONS
# =============================================================================

class IdGenerationConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Identifier generator tuning."""
    max_retries: int = 10
    random_suffix_length: int = 3

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("id_generation.max_retries must be >= 1")
        if self.random_suffix_length < 1:
            raise ValueError("id_generation.random_suffix_length must be >= 1")


class ValidationConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Structural validator switches."""
    flag_cycles: bool = False


class MutationLogConfig(msgspec.Struct, kw_only=True, frozen=True):
    """In-memory mutation log settings."""
    enabled: bool = True
    buffer_size: int = 10000


class GraphCoreConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Top-level configuration."""
    id_generation: IdGenerationConfig = msgspec.field(default_factory=IdGenerationConfig)
    validation: ValidationConfig = msgspec.field(default_factory=ValidationConfig)
    mutation_log: MutationLogConfig = msgspec.field(default_factory=MutationLogConfig)


# =============================================================================
# LOADING
# =============================================================================

def _resolve_path(path: Optional[Path | str]) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_toml_config(path: Optional[Path | str] = None) -> Dict[str, Any]:
    """
    Read the raw TOML mapping.

    A missing file yields an empty mapping. An unreadable or malformed file
    yields an empty mapping and a warning.
    """
    config_path = _resolve_path(path)
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from {config_path}: {e}")
        return {}


def load_config(path: Optional[Path | str] = None) -> GraphCoreConfig:
    """
    Load and type-check configuration.

    Unknown keys are ignored. Values of the wrong type produce a warning and
    the full default configuration.
    """
    raw = load_toml_config(path)
    try:
        return msgspec.convert(raw, type=GraphCoreConfig)
    except (msgspec.ValidationError, ValueError) as e:
        warnings.warn(f"Invalid workflow graph configuration, using defaults: {e}")
        return GraphCoreConfig()


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_global_config: Optional[GraphCoreConfig] = None


def get_config() -> GraphCoreConfig:
    """Get or load the process-wide configuration."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: GraphCoreConfig) -> GraphCoreConfig:
    """Replace the process-wide configuration."""
    global _global_config
    _global_config = config
    return config


def reset_config() -> None:
    """Forget the loaded configuration; the next get_config() reloads."""
    global _global_config
    _global_config = None
