# =============================================================================
# Configuration Loading
# =============================================================================

import re
import time
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import platformdirs
from loguru import logger

from listprojects.errors import ConfigError, Error, ErrorType, Result
from listprojects.logging_config import APP_NAME
from listprojects.models import RootSpec
from listprojects.walker import DEFAULT_MARKER, DEFAULT_SKIP_NAMES, DEFAULT_SKIP_SUFFIXES

CONFIG_FILENAME = "config.toml"

# Default configuration - everything but root_dirs works without a user config
DEFAULT_CONFIG = {
    "root_dirs": [],
    "discovery": {
        "marker": DEFAULT_MARKER,
        "skip_dirs": sorted(DEFAULT_SKIP_NAMES),
        "skip_suffixes": list(DEFAULT_SKIP_SUFFIXES),
        "workers_per_root": 4,
        "channel_capacity": 100,
        "settle_time": 0.3,
    },
    "selector": {
        "command": "fzf",
        "height": "50%",
        "header": "Choose project",
    },
}


@dataclass(frozen=True)
class DiscoverySettings:
    marker: str = DEFAULT_MARKER
    skip_dirs: frozenset = DEFAULT_SKIP_NAMES
    skip_suffixes: tuple = DEFAULT_SKIP_SUFFIXES
    workers_per_root: int = 4
    channel_capacity: int = 100
    settle_time: float = 0.3


@dataclass(frozen=True)
class SelectorSettings:
    command: str = "fzf"
    height: str = "50%"
    header: str = "Choose project"


@dataclass(frozen=True)
class Settings:
    roots: list[RootSpec]
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
    selector: SelectorSettings = field(default_factory=SelectorSettings)


def default_config_path() -> Path:
    """e.g. ~/.config/listprojects/config.toml on Linux."""
    return Path(platformdirs.user_config_dir(appname=APP_NAME)) / CONFIG_FILENAME


def expand_root(path: str | Path) -> Path:
    """Expand ``~`` and canonicalise a configured root path."""
    return Path(path).expanduser().resolve()


def extract_toml_error_context(error: tomllib.TOMLDecodeError, file_path: Path) -> dict:
    """
    Extract line context from TOML parse error.

    Args:
        error: The TOMLDecodeError exception
        file_path: Path to the TOML file

    Returns:
        Dict with line_number, line_content, and formatted_message
    """
    error_str = str(error)
    line_number = None
    line_content = None

    # Common formats: "line 15", "at line 15", "(line 15)"
    line_match = re.search(r'line\s+(\d+)', error_str, re.IGNORECASE)
    if line_match:
        line_number = int(line_match.group(1))

    if line_number and file_path.exists():
        try:
            with open(file_path, "r") as f:
                lines = f.readlines()
                if 0 < line_number <= len(lines):
                    line_content = lines[line_number - 1].rstrip()
        except OSError:
            pass

    if line_number:
        formatted = f"Error on line {line_number}"
        if line_content:
            display_line = line_content[:50] + "..." if len(line_content) > 50 else line_content
            formatted += f": {display_line}"
        formatted += f" ({error_str})"
    else:
        formatted = f"TOML parse error: {error_str}"

    return {
        "line_number": line_number,
        "line_content": line_content,
        "formatted_message": formatted,
        "raw_error": error_str
    }


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dictionary."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _validation_error(config_path: Path, message: str) -> Result[dict]:
    logger.error(
        "Invalid configuration",
        operation="load_config_from_path",
        status="failed",
        config_path=str(config_path),
        error=message
    )
    return Result.err(Error(
        error_type=ErrorType.VALIDATION_ERROR,
        message=f"{config_path}: {message}",
        context={"config_path": str(config_path)}
    ))


def _validate(config: dict, config_path: Path) -> Result[dict]:
    root_dirs = config.get("root_dirs")
    if not isinstance(root_dirs, list):
        return _validation_error(config_path, "'root_dirs' must be an array of tables")
    for index, entry in enumerate(root_dirs):
        if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
            return _validation_error(config_path, f"root_dirs[{index}] needs a string 'path'")
        if not isinstance(entry.get("prefix", ""), str):
            return _validation_error(config_path, f"root_dirs[{index}].prefix must be a string")

    discovery = config.get("discovery")
    if not isinstance(discovery, dict):
        return _validation_error(config_path, "[discovery] must be a table")
    marker = discovery.get("marker")
    if not isinstance(marker, str) or not marker:
        return _validation_error(config_path, "discovery.marker must be a non-empty string")
    for key in ("skip_dirs", "skip_suffixes"):
        value = discovery.get(key)
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return _validation_error(config_path, f"discovery.{key} must be an array of strings")
    for key in ("workers_per_root", "channel_capacity"):
        value = discovery.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            return _validation_error(config_path, f"discovery.{key} must be a positive integer")
    settle = discovery.get("settle_time")
    if isinstance(settle, bool) or not isinstance(settle, (int, float)) or settle < 0:
        return _validation_error(config_path, "discovery.settle_time must be a non-negative number")

    if not isinstance(config.get("selector"), dict):
        return _validation_error(config_path, "[selector] must be a table")

    return Result.ok(config)


def load_config_from_path(config_path: Path) -> Result[dict]:
    """
    Load configuration from specified TOML file with defaults fallback.

    Args:
        config_path: Path to the config TOML file

    Returns:
        Result[dict]: Ok with merged config, or Err with error details
    """
    start_time = time.perf_counter()
    logger.debug(
        "Loading config from path",
        operation="load_config_from_path",
        status="started",
        config_path=str(config_path)
    )

    if not config_path.exists():
        logger.debug(
            "Config file not found",
            operation="load_config_from_path",
            status="missing",
            config_path=str(config_path)
        )
        return Result.err(Error(
            error_type=ErrorType.FILE_NOT_FOUND,
            message=f"Config file not found: {config_path}",
            context={"config_path": str(config_path)}
        ))

    try:
        with open(config_path, "rb") as f:
            user_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        error_context = extract_toml_error_context(e, config_path)
        logger.error(
            "Invalid TOML syntax in configuration file",
            operation="load_config_from_path",
            status="failed",
            file=str(config_path),
            line_number=error_context["line_number"],
            line_content=error_context["line_content"],
            error=error_context["formatted_message"]
        )
        return Result.err(Error(
            error_type=ErrorType.PARSE_ERROR,
            message=f"{config_path}: {error_context['formatted_message']}",
            context={"config_path": str(config_path), "line_number": error_context["line_number"]},
            original_exception=e
        ))
    except OSError as e:
        return Result.err(Error(
            error_type=ErrorType.PERMISSION_ERROR if isinstance(e, PermissionError) else ErrorType.IO_ERROR,
            message=f"Cannot read config file {config_path}: {e}",
            context={"config_path": str(config_path)},
            original_exception=e
        ))

    merged = deep_merge(DEFAULT_CONFIG, user_config)
    result = _validate(merged, config_path)
    if result.is_err():
        return result

    duration_ms = int((time.perf_counter() - start_time) * 1000)
    logger.debug(
        "Config loaded successfully",
        operation="load_config_from_path",
        status="success",
        config_path=str(config_path),
        metrics={"root_dirs_count": len(merged["root_dirs"]), "duration_ms": duration_ms}
    )
    return Result.ok(merged)


def settings_from_config(config: dict, cli_roots: list[str] | None = None) -> Settings:
    if cli_roots:
        roots = [RootSpec(path=expand_root(p)) for p in cli_roots]
    else:
        roots = [
            RootSpec(path=expand_root(entry["path"]), prefix=entry.get("prefix", ""))
            for entry in config["root_dirs"]
        ]

    discovery = config["discovery"]
    selector = config["selector"]
    return Settings(
        roots=roots,
        discovery=DiscoverySettings(
            marker=discovery["marker"],
            skip_dirs=frozenset(discovery["skip_dirs"]),
            skip_suffixes=tuple(discovery["skip_suffixes"]),
            workers_per_root=discovery["workers_per_root"],
            channel_capacity=discovery["channel_capacity"],
            settle_time=float(discovery["settle_time"]),
        ),
        selector=SelectorSettings(
            command=str(selector.get("command", "fzf")),
            height=str(selector.get("height", "50%")),
            header=str(selector.get("header", "Choose project")),
        ),
    )


def load_settings(config_path: Path | None = None, cli_roots: list[str] | None = None) -> Settings:
    """
    Build run settings from the config file and command-line roots.

    Positional roots replace ``root_dirs`` (without prefixes); the config
    file is then optional. Without them a readable config naming at least
    one root is required.

    Raises:
        ConfigError: Config missing/invalid (and no CLI roots), or no roots at all
    """
    try:
        config_path = config_path or default_config_path()
    except OSError as e:
        raise ConfigError(f"cannot determine config directory: {e}") from e

    result = load_config_from_path(config_path)
    if result.is_ok():
        config = result.value
    elif cli_roots and result.error.error_type is ErrorType.FILE_NOT_FOUND:
        config = DEFAULT_CONFIG
    else:
        raise ConfigError(result.error.message)

    settings = settings_from_config(config, cli_roots)
    if not settings.roots:
        raise ConfigError(f"no root directories configured - add [[root_dirs]] to {config_path} or pass paths")

    for root in settings.roots:
        if not root.path.is_dir():
            logger.warning(
                "Configured root is not a directory",
                operation="load_settings",
                status="skip",
                root=str(root.path)
            )

    return settings
