"""
schema_fk_checker/config.py
═══════════════════════════

JSON configuration for the checker suite.

A configuration file looks like::

    {
      "include": ["db/schema.rb", "db/migrate/*.rb"],
      "exclude": ["vendor/**"],
      "suppress": ["invalidIntegerForeignKey:db/migrate/2015*"],
      "checkers": {
        "invalid-integer-foreign-key": {"enabled": true, "severity": "error"}
      }
    }

Every key is optional.  When no ``--config`` is given, the file
``.schema-fk.json`` is looked up from the working directory upwards.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Union

from schema_fk_checker.errors import ConfigError, ErrorCodes

_log = logging.getLogger(__name__)

CONFIG_FILENAME = ".schema-fk.json"

DEFAULT_INCLUDE = ("**/*.rb",)

_KNOWN_KEYS = frozenset({"include", "exclude", "suppress", "checkers"})
_KNOWN_CHECKER_KEYS = frozenset({"enabled", "severity"})
_SEVERITIES = frozenset({"error", "warning", "style", "information"})


@dataclass
class CheckerSettings:
    """Per-checker overrides."""
    enabled: bool = True
    severity: Optional[str] = None


@dataclass
class SchemaFkConfig:
    """
    Resolved configuration.

    Attributes
    ----------
    include  : glob patterns a file must match to be checked
    exclude  : glob patterns that remove a file from checking
    suppress : error ids suppressed everywhere, or ``<id>:<file pattern>``
               entries suppressed only in matching files
    checkers : checker name → :class:`CheckerSettings`
    source   : path the configuration was read from ("" for defaults)
    """
    include: List[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: List[str] = field(default_factory=list)
    suppress: List[str] = field(default_factory=list)
    checkers: Dict[str, CheckerSettings] = field(default_factory=dict)
    source: str = ""

    def applies_to(self, path: Union[str, Path]) -> bool:
        """Whether ``path`` passes the include and exclude patterns."""
        posix = PurePosixPath(Path(path).as_posix())
        if not any(_glob_match(posix, pattern) for pattern in self.include):
            return False
        return not any(_glob_match(posix, pattern) for pattern in self.exclude)

    def is_enabled(self, checker_name: str) -> bool:
        settings = self.checkers.get(checker_name)
        return settings is None or settings.enabled

    def severity_for(self, checker_name: str) -> Optional[str]:
        settings = self.checkers.get(checker_name)
        return settings.severity if settings is not None else None

    def to_options(self) -> Dict[str, Any]:
        """Checker options in the shape :class:`CheckerContext` expects."""
        return {
            name: {"enabled": s.enabled, "severity": s.severity}
            for name, s in self.checkers.items()
        }


def _glob_match(path: PurePosixPath, pattern: str) -> bool:
    # patterns are matched against every trailing part of the path, so
    # "db/schema.rb" matches "/srv/app/db/schema.rb"
    if pattern.startswith("**/"):
        pattern = pattern[3:]
    parts = [p for p in path.parts if p != "/"]
    return any(fnmatch("/".join(parts[i:]), pattern) for i in range(len(parts)))


def _string_list(data: Dict[str, Any], key: str, path: str) -> Optional[List[str]]:
    if key not in data:
        return None
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(
            f"'{key}' must be a list of strings",
            code=ErrorCodes.CONFIG_INVALID_VALUE,
            path=path,
        )
    return list(value)


def _checker_settings(name: str, raw: Any, path: str) -> CheckerSettings:
    if not isinstance(raw, dict):
        raise ConfigError(
            f"settings for checker '{name}' must be an object",
            path=path,
        )
    for key in raw:
        if key not in _KNOWN_CHECKER_KEYS:
            _log.warning("%s: ignoring unknown key '%s' for checker '%s'", path, key, name)

    enabled = raw.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"'{name}.enabled' must be true or false", path=path)

    severity = raw.get("severity")
    if severity is not None:
        if not isinstance(severity, str) or severity.lower() not in _SEVERITIES:
            raise ConfigError(
                f"'{name}.severity' must be one of: {', '.join(sorted(_SEVERITIES))}",
                path=path,
            )
        severity = severity.lower()
    return CheckerSettings(enabled=enabled, severity=severity)


def config_from_dict(data: Any, path: str = "") -> SchemaFkConfig:
    """Validate a decoded JSON document and build a :class:`SchemaFkConfig`."""
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a JSON object", path=path)

    for key in data:
        if key not in _KNOWN_KEYS:
            _log.warning("%s: ignoring unknown configuration key '%s'", path or "config", key)

    config = SchemaFkConfig(source=path)
    include = _string_list(data, "include", path)
    if include is not None:
        config.include = include
    exclude = _string_list(data, "exclude", path)
    if exclude is not None:
        config.exclude = exclude
    suppress = _string_list(data, "suppress", path)
    if suppress is not None:
        config.suppress = suppress

    checkers = data.get("checkers", {})
    if not isinstance(checkers, dict):
        raise ConfigError("'checkers' must be an object", path=path)
    for name, raw in checkers.items():
        config.checkers[name] = _checker_settings(name, raw, path)
    return config


def load_config(path: Union[str, Path]) -> SchemaFkConfig:
    """Read and validate the configuration file at ``path``."""
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise ConfigError(f"cannot read configuration: {exc}", path=str(p), cause=exc) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"invalid JSON at line {exc.lineno}: {exc.msg}",
            code=ErrorCodes.CONFIG_INVALID_JSON,
            path=str(p),
            cause=exc,
        ) from exc
    _log.info("loaded configuration from %s", p)
    return config_from_dict(data, path=str(p))


def find_config(start: Union[str, Path, None] = None) -> Optional[Path]:
    """Nearest ``.schema-fk.json`` at or above ``start`` (default: cwd)."""
    directory = Path(start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def resolve_config(explicit: Optional[str] = None, search_from: Optional[Path] = None) -> SchemaFkConfig:
    """Explicit file if given, else the nearest discovered file, else defaults."""
    if explicit:
        return load_config(explicit)
    found = find_config(search_from)
    if found is not None:
        return load_config(found)
    return SchemaFkConfig()


def validate_checker_names(config: SchemaFkConfig, names: Sequence[str]) -> None:
    """Raise if the configuration mentions a checker that does not exist."""
    for name in config.checkers:
        if name not in names:
            raise ConfigError(
                f"unknown checker '{name}' (available: {', '.join(sorted(names))})",
                code=ErrorCodes.CONFIG_UNKNOWN_CHECKER,
                path=config.source,
            )


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_INCLUDE",
    "CheckerSettings",
    "SchemaFkConfig",
    "config_from_dict",
    "load_config",
    "find_config",
    "resolve_config",
    "validate_checker_names",
]
