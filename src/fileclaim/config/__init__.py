"""Configuration management for fileclaim.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/fileclaim/ or %PROGRAMDATA%)
- User-level config (~/.config/fileclaim/, ~/.fileclaim/ or %APPDATA%)
- Project-level config (<root>/.fileclaim/)
- Environment variable overrides (highest priority)

Example usage:
    from fileclaim.config import load_config

    config = load_config(root="/path/to/project")
    print(config.coordination.claim_stale_after)
"""

from fileclaim.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from fileclaim.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
    resolve_state_dir,
)
from fileclaim.config.schema import (
    AdvisorConfig,
    AgentProfileConfig,
    Config,
    CoordinationConfig,
    LoggingConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    # Schema types
    "AdvisorConfig",
    "AgentProfileConfig",
    "CoordinationConfig",
    "LoggingConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
    "resolve_state_dir",
]
