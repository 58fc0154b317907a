"""
Routing Configuration loader

Reads the static routing descriptor once at startup. The document is YAML or
JSON: either a list of `{channel, tags, token}` objects or a mapping with an
`items` list of them. Tokens written as `${NAME}` are resolved from the
environment. Any problem is a ConfigurationFailure; there is no reload.
"""

import logging
import os
import re
from typing import Any, Mapping, Optional

import yaml
from pydantic import ValidationError

from models import RoutingConfiguration
from runtime.errors import ConfigurationFailure

logger = logging.getLogger(__name__)

_ENV_REFERENCE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def _resolve_token(value: Any, env: Mapping[str, str], index: int, path: str) -> Any:
    if not isinstance(value, str):
        return value
    match = _ENV_REFERENCE.match(value.strip())
    if not match:
        return value
    name = match.group(1)
    resolved = env.get(name)
    if not resolved:
        raise ConfigurationFailure(f"items[{index}].token references unset variable {name}", path)
    return resolved


def parse_routing_config(document: Any, env: Optional[Mapping[str, str]] = None,
                         path: str = "<routing>") -> RoutingConfiguration:
    """Validate an already-decoded descriptor into a RoutingConfiguration"""
    env = os.environ if env is None else env

    if isinstance(document, Mapping):
        unknown = set(document) - {"items"}
        if unknown:
            raise ConfigurationFailure(f"unexpected top-level keys: {sorted(unknown)}", path)
        raw_items = document.get("items")
    else:
        raw_items = document

    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        raise ConfigurationFailure("expected a list of routing rules", path)

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, Mapping):
            raise ConfigurationFailure(f"items[{index}] must be a mapping", path)
        entry = dict(raw)
        if "token" in entry:
            entry["token"] = _resolve_token(entry["token"], env, index, path)
        items.append(entry)

    try:
        config = RoutingConfiguration.model_validate({"items": items})
    except ValidationError as e:
        raise ConfigurationFailure(f"invalid routing rule: {e}", path) from e

    return config


def load_routing_config(path: str, env: Optional[Mapping[str, str]] = None) -> RoutingConfiguration:
    """Load and validate the routing descriptor at `path`"""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationFailure("routing descriptor not found", path) from e
    except OSError as e:
        raise ConfigurationFailure(f"cannot read routing descriptor: {e}", path) from e
    except yaml.YAMLError as e:
        raise ConfigurationFailure(f"cannot parse routing descriptor: {e}", path) from e

    config = parse_routing_config(document, env=env, path=path)
    logger.info(f"Loaded {len(config.items)} routing rules from {path}")
    for rule in config.items:
        logger.info(f"  -> {rule.destination} tags={list(rule.tags) or 'any'}")
    return config
