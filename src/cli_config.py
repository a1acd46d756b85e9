"""Run configuration: rc file discovery, parsing and CLI overrides.

Configuration is read from the project directory (or an explicit --config
path) and then overridden by CLI flags, which have the highest precedence.
A broken config file never stops a run; it is reported and ignored.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import (
    Constants,
    DEFAULT_CRITICAL_DEPENDENCIES,
    DEFAULT_PROBLEMATIC_PACKAGES,
)

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Effective settings for one run."""

    package_manager: Optional[str] = None
    registry_url: Optional[str] = None
    timeout: float = Constants.REQUEST_TIMEOUT
    retries: int = Constants.HTTP_RETRY_MAX
    ignore_packages: List[str] = field(default_factory=list)
    critical_dependencies: List[str] = field(default_factory=lambda: list(DEFAULT_CRITICAL_DEPENDENCIES))
    problematic_packages: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_PROBLEMATIC_PACKAGES.items()}
    )
    source: Optional[str] = None


def find_config_file(directory: str) -> Optional[str]:
    """First known config file present in ``directory``."""
    for name in Constants.CONFIG_FILES:
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            return path
    return None


def _read_config_file(path: str) -> Dict[str, Any]:
    """Parse a config file as JSON (``.json``) or YAML (anything else).

    Plain ``.peerdepsrc`` files are YAML, which also accepts JSON content.
    """
    with open(path, "r", encoding="utf-8") as fh:
        if path.lower().endswith(".json"):
            data = json.load(fh)
        else:
            data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("top-level value is not a mapping")
    return data


def _string_list(value: Any, key: str) -> Optional[List[str]]:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    logger.warning("Ignoring config key %s: expected a list of strings", key)
    return None


def _problematic(value: Any) -> Optional[Dict[str, Dict[str, str]]]:
    if not isinstance(value, dict):
        logger.warning("Ignoring config key problematicPackages: expected a mapping")
        return None
    result: Dict[str, Dict[str, str]] = {}
    for pkg, peers in value.items():
        if isinstance(peers, list):
            peers = {peer: "*" for peer in peers}
        if not isinstance(peers, dict):
            logger.warning("Ignoring problematicPackages entry %s: expected peers", pkg)
            continue
        result[str(pkg)] = {str(k): str(v) for k, v in peers.items()}
    return result


def _apply_file_values(config: RunConfig, data: Dict[str, Any]) -> None:
    pm = data.get("packageManager")
    if pm is not None:
        if isinstance(pm, str) and pm.lower() in Constants.SUPPORTED_PACKAGE_MANAGERS:
            config.package_manager = pm.lower()
        else:
            logger.warning("Ignoring unsupported packageManager %r in config", pm)

    url = data.get("registryUrl")
    if url is not None:
        if isinstance(url, str) and url.strip():
            config.registry_url = url.strip()
        else:
            logger.warning("Ignoring config key registryUrl: expected a URL string")

    if "timeout" in data:
        try:
            config.timeout = float(data["timeout"])
        except (TypeError, ValueError):
            logger.warning("Ignoring config key timeout: %r is not a number", data["timeout"])

    if "retries" in data:
        try:
            config.retries = max(1, int(data["retries"]))
        except (TypeError, ValueError):
            logger.warning("Ignoring config key retries: %r is not an integer", data["retries"])

    if "ignorePackages" in data:
        ignore = _string_list(data["ignorePackages"], "ignorePackages")
        if ignore is not None:
            config.ignore_packages = ignore

    if "criticalDependencies" in data:
        critical = _string_list(data["criticalDependencies"], "criticalDependencies")
        if critical is not None:
            config.critical_dependencies = critical

    if "problematicPackages" in data:
        problematic = _problematic(data["problematicPackages"])
        if problematic is not None:
            config.problematic_packages = problematic


def load_config(directory: str, path: Optional[str] = None) -> RunConfig:
    """Load the run configuration for a project.

    Args:
        directory: Project directory searched for a config file.
        path: Explicit config path (e.g. from --config); skips the search.

    Returns:
        RunConfig with defaults for anything not configured.
    """
    config = RunConfig()
    if path:
        if not os.path.isfile(path):
            logger.warning("Config file not found: %s", path)
            return config
    else:
        path = find_config_file(directory)
        if path is None:
            return config

    try:
        data = _read_config_file(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Ignoring invalid config file %s: %s", path, e)
        return config

    _apply_file_values(config, data)
    config.source = path
    logger.debug("Loaded configuration from %s", path)
    return config


def apply_cli_overrides(config: RunConfig, args) -> RunConfig:
    """Apply CLI flags on top of file configuration (highest precedence)."""
    if getattr(args, "PACKAGE_MANAGER", None):
        config.package_manager = args.PACKAGE_MANAGER
    if getattr(args, "REGISTRY", None):
        config.registry_url = args.REGISTRY
    if getattr(args, "TIMEOUT", None) is not None:
        config.timeout = float(args.TIMEOUT)
    return config


def default_registry_url(run=subprocess.run) -> str:
    """Registry configured for npm, else the public npm registry."""
    try:
        result = run(
            ["npm", "config", "get", "registry"],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Could not query npm registry config: %s", exc)
        return Constants.REGISTRY_URL_NPM
    url = (result.stdout or "").strip()
    if result.returncode == 0 and url.startswith(("http://", "https://")):
        return url
    return Constants.REGISTRY_URL_NPM


def resolve_registry_url(config: RunConfig) -> str:
    """Registry URL from configuration, falling back to npm's own setting."""
    return config.registry_url or default_registry_url()
