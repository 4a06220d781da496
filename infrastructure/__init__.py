"""
WORKFLOW GRAPH INFRASTRUCTURE - Ambient Modules

This package contains infrastructure components:
- config: TOML configuration loaded into frozen msgspec Structs
- logger: In-memory mutation log for the workflow store
"""

from infrastructure.config import (
    GraphCoreConfig,
    IdGenerationConfig,
    ValidationConfig,
    MutationLogConfig,
    load_config,
    get_config,
    set_config,
    reset_config,
)
from infrastructure.logger import (
    MutationLog,
    MutationEvent,
    MutationType,
    get_mutation_log,
    configure_mutation_log,
    reset_mutation_log,
)

__all__ = [
    "GraphCoreConfig",
    "IdGenerationConfig",
    "ValidationConfig",
    "MutationLogConfig",
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "MutationLog",
    "MutationEvent",
    "MutationType",
    "get_mutation_log",
    "configure_mutation_log",
    "reset_mutation_log",
]
