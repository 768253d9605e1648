"""
Configuration management for viewx.

Handles loading and saving user configuration from:
- $VIEWX_CONFIG, when set
- XDG config directory: ~/.config/viewx/config.json
- Fallback: ~/.viewx/config.json
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, field, fields

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VIEWX_CONFIG"


@dataclass
class CompilerConfig:
    """View compiler settings."""
    strict_xml_first: bool = True
    parse_cache_size: int = 128
    log_to_cache: bool = True


@dataclass
class CacheConfig:
    """Compiled-view cache settings."""
    enabled: bool = True
    backend: str = "memory"  # memory, database


@dataclass
class StoreConfig:
    """View definition store settings."""
    database_path: Optional[str] = None
    default_priority: int = 16
    cache_resolved: bool = True


@dataclass
class SlotConfig:
    """Slot rendering settings."""
    max_depth: int = 8


@dataclass
class RenderConfig:
    """Template rendering settings."""
    template_dir: Optional[str] = None
    template_suffix: str = ".html"


@dataclass
class CLIConfig:
    """CLI default options."""
    verbose: bool = False
    color: bool = True


def _section(section_class, data: Optional[Dict[str, Any]]):
    # Unknown keys from newer or older config files are ignored
    known = {f.name for f in fields(section_class)}
    return section_class(**{key: value for key, value in (data or {}).items() if key in known})


@dataclass
class ViewxConfig:
    """Main viewx configuration."""
    compiler: CompilerConfig = field(default_factory=CompilerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    slots: SlotConfig = field(default_factory=SlotConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    cli: CLIConfig = field(default_factory=CLIConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "compiler": asdict(self.compiler),
            "cache": asdict(self.cache),
            "store": asdict(self.store),
            "slots": asdict(self.slots),
            "render": asdict(self.render),
            "cli": asdict(self.cli),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ViewxConfig':
        """Create from dictionary."""
        return cls(
            compiler=_section(CompilerConfig, data.get("compiler")),
            cache=_section(CacheConfig, data.get("cache")),
            store=_section(StoreConfig, data.get("store")),
            slots=_section(SlotConfig, data.get("slots")),
            render=_section(RenderConfig, data.get("render")),
            cli=_section(CLIConfig, data.get("cli")),
        )


def get_config_path() -> Path:
    """
    Get configuration file path.

    1. $VIEWX_CONFIG
    2. $XDG_CONFIG_HOME/viewx/config.json (usually ~/.config/viewx/config.json)
    3. Fallback: ~/.viewx/config.json

    Returns:
        Path to config file
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    xdg_config_home = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    if xdg_config_home.exists():
        config_dir = xdg_config_home / "viewx"
    else:
        config_dir = Path.home() / ".viewx"

    return config_dir / "config.json"


def load_config(path: Optional[Path] = None) -> ViewxConfig:
    """
    Load configuration from file.

    Returns:
        ViewxConfig instance with loaded values or defaults
    """
    config_path = Path(path) if path else get_config_path()

    if not config_path.exists():
        return ViewxConfig()

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
        return ViewxConfig.from_dict(data)
    except (json.JSONDecodeError, OSError, TypeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}; using defaults")
        return ViewxConfig()


def save_config(config: ViewxConfig, path: Optional[Path] = None) -> Path:
    """
    Save configuration to file.

    Returns:
        Path the configuration was written to
    """
    config_path = Path(path) if path else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def ensure_config_exists(path: Optional[Path] = None) -> Path:
    """
    Ensure configuration file exists, creating with defaults if not.

    Returns:
        Path to config file
    """
    config_path = Path(path) if path else get_config_path()

    if not config_path.exists():
        save_config(ViewxConfig(), config_path)
        logger.info(f"Created default configuration at {config_path}")

    return config_path


def update_config(
    path: Optional[Path] = None,
    # Compiler settings
    strict_xml_first: Optional[bool] = None,
    parse_cache_size: Optional[int] = None,
    log_to_cache: Optional[bool] = None,
    # Cache settings
    cache_enabled: Optional[bool] = None,
    cache_backend: Optional[str] = None,
    # Store settings
    database_path: Optional[str] = None,
    default_priority: Optional[int] = None,
    cache_resolved: Optional[bool] = None,
    # Slot settings
    max_slot_depth: Optional[int] = None,
    # Render settings
    template_dir: Optional[str] = None,
    template_suffix: Optional[str] = None,
    # CLI settings
    cli_verbose: Optional[bool] = None,
    cli_color: Optional[bool] = None,
) -> ViewxConfig:
    """
    Update configuration.

    Only updates provided values, leaving others unchanged.
    """
    config = load_config(path)

    if strict_xml_first is not None:
        config.compiler.strict_xml_first = strict_xml_first
    if parse_cache_size is not None:
        config.compiler.parse_cache_size = parse_cache_size
    if log_to_cache is not None:
        config.compiler.log_to_cache = log_to_cache

    if cache_enabled is not None:
        config.cache.enabled = cache_enabled
    if cache_backend is not None:
        if cache_backend not in ("memory", "database"):
            raise ValueError(f"Unknown cache backend: {cache_backend}")
        config.cache.backend = cache_backend

    if database_path is not None:
        config.store.database_path = database_path
    if default_priority is not None:
        config.store.default_priority = default_priority
    if cache_resolved is not None:
        config.store.cache_resolved = cache_resolved

    if max_slot_depth is not None:
        config.slots.max_depth = max_slot_depth

    if template_dir is not None:
        config.render.template_dir = template_dir
    if template_suffix is not None:
        config.render.template_suffix = template_suffix

    if cli_verbose is not None:
        config.cli.verbose = cli_verbose
    if cli_color is not None:
        config.cli.color = cli_color

    save_config(config, path)
    return config
