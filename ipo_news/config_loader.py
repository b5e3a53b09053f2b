"""
Load per-source overrides from ``config/sources.yaml``.

String values may reference the environment as ``${VAR}`` or
``${VAR:-fallback}``; unset variables without a fallback expand to "".
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def load_sources_config(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        logger.info("Source config not found at %s; using built-in defaults", config_path)
        return {}
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        logger.error("Invalid YAML in %s: %s", config_path, exc)
        return {}
    if not isinstance(data, dict):
        logger.error("Source config %s must be a mapping, got %s", config_path, type(data).__name__)
        return {}
    return expand_env(data)


def expand_env(node: Any) -> Any:
    if isinstance(node, str):
        return _ENV_REF.sub(lambda m: os.getenv(m.group(1)) or (m.group(2) or ""), node)
    if isinstance(node, dict):
        return {key: expand_env(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_env(item) for item in node]
    return node
