"""Finding the buildx builder instance to connect to."""

from __future__ import annotations

import json
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlsplit

SUPPORTED_DRIVER = "docker-container"
CONTAINER_PREFIX = "buildx_buildkit_"

PathLike = Union[str, os.PathLike]


class BuildxError(ValueError):
    """Raised when a buildx builder cannot be located or used."""


@dataclass(frozen=True)
class BuildxNode:
    """One node of a buildx builder instance."""

    name: str
    endpoint: str


@dataclass(frozen=True)
class BuildxConfig:
    """The driver and nodes of a buildx builder instance."""

    driver: str
    nodes: tuple[BuildxNode, ...]

    def pick_node(self, rng: Optional[random.Random] = None) -> BuildxNode:
        """Choose a node, at random when there is more than one."""
        if not self.nodes:
            raise BuildxError("no nodes configured for buildx instance")
        nodes = list(self.nodes)
        if len(nodes) > 1:
            (rng or random).shuffle(nodes)
        return nodes[0]


def parse_buildx_url(url: str) -> str:
    """Return the builder named by a ``buildx://`` URL; empty means the default one."""
    parts = urlsplit(url)
    if parts.scheme != "buildx":
        raise BuildxError(f"unsupported connection scheme: {parts.scheme}")
    if parts.path:
        raise BuildxError(f"buildx driver does not support path elements: {parts.path}")
    return parts.netloc


def _docker_config_dir() -> Path:
    configured = os.environ.get("DOCKER_CONFIG", "")
    if configured:
        return Path(configured)
    return Path.home() / ".docker"


def _buildx_dir(config_dir: Optional[PathLike]) -> Path:
    base = Path(config_dir) if config_dir is not None else _docker_config_dir()
    return base / "buildx"


def current_buildx_builder(config_dir: Optional[PathLike] = None) -> str:
    """Name of the builder in use: ``BUILDX_BUILDER`` or the one buildx marks current."""
    builder = os.environ.get("BUILDX_BUILDER", "")
    if builder:
        return builder
    data = (_buildx_dir(config_dir) / "current").read_bytes()
    try:
        document = json.loads(data)
    except ValueError as exc:
        raise BuildxError(f"could not unmarshal buildx config: {exc}") from exc
    if not isinstance(document, dict):
        raise BuildxError("could not unmarshal buildx config: expected a JSON object")
    name = document.get("name", "")
    return name if isinstance(name, str) else ""


def _field(document: dict[str, Any], name: str) -> Any:
    if name in document:
        return document[name]
    lowered = name.lower()
    for key, value in document.items():
        if key.lower() == lowered:
            return value
    return None


def load_buildx_config(config_dir: Optional[PathLike], builder: str) -> BuildxConfig:
    """Read and check the instance config of ``builder``.

    Only ``docker-container`` builders with at least one node can be used.
    """
    data = (_buildx_dir(config_dir) / "instances" / builder).read_bytes()
    try:
        document = json.loads(data)
    except ValueError as exc:
        raise BuildxError(f"could not unmarshal buildx instance config: {exc}") from exc
    if not isinstance(document, dict):
        raise BuildxError("could not unmarshal buildx instance config: expected a JSON object")

    driver = _field(document, "Driver") or ""
    nodes = []
    for raw in _field(document, "Nodes") or []:
        if not isinstance(raw, dict):
            raise BuildxError("could not unmarshal buildx instance config: bad node entry")
        nodes.append(
            BuildxNode(
                name=str(_field(raw, "Name") or ""),
                endpoint=str(_field(raw, "Endpoint") or ""),
            )
        )
    config = BuildxConfig(driver=str(driver), nodes=tuple(nodes))

    if config.driver != SUPPORTED_DRIVER:
        raise BuildxError(f"unsupported buildx driver: {config.driver}")
    if not config.nodes:
        raise BuildxError("no nodes configured for buildx instance")
    return config


def container_name(node: BuildxNode) -> str:
    """Name of the container that runs buildkit for ``node``."""
    return CONTAINER_PREFIX + node.name