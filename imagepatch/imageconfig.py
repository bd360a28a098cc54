"""Reading and adjusting image configuration JSON for patching."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from imagepatch.platforms import PatchPlatform

BASE_IMAGE_LABEL = "BaseImage"

_MAP_ASSERTION_FAILED = "type assertion to map[string]interface{} failed"
_STRING_ASSERTION_FAILED = "type assertion to string failed"

# Escapes applied to serialised JSON so the bytes match what image tooling emits.
_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)

ConfigBytes = Union[bytes, str]


class ImageConfigError(ValueError):
    """Raised when an image configuration cannot be read or adjusted."""


@dataclass(frozen=True)
class ResolvedConfig:
    """Config to build from, config of a previously patched image, and the image to build on."""

    config_data: Optional[bytes]
    patched_config_data: Optional[bytes]
    base_image: str


def _load_object(config_data: ConfigBytes) -> dict[str, Any]:
    try:
        document = json.loads(config_data)
    except (ValueError, TypeError) as exc:
        raise ImageConfigError(str(exc)) from exc
    if not isinstance(document, dict):
        raise ImageConfigError("json: cannot unmarshal non-object into map")
    return document


def _dump(document: dict[str, Any]) -> bytes:
    text = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    for raw, escaped in _JSON_ESCAPES:
        text = text.replace(raw, escaped)
    return text.encode("utf-8")


def setup_labels(image: str, config_data: ConfigBytes) -> tuple[str, bytes]:
    """Read the ``BaseImage`` label, adding it with ``image`` when it is missing.

    Returns the existing base image (empty when the label was absent) and the
    config serialised with the label in place.
    """
    document = _load_object(config_data)

    config = document.get("config")
    if not isinstance(config, dict):
        raise ImageConfigError(_MAP_ASSERTION_FAILED)

    if config.get("labels") is None:
        config["labels"] = {}
    labels = config["labels"]
    if not isinstance(labels, dict):
        raise ImageConfigError(_MAP_ASSERTION_FAILED)

    base_image = ""
    value = labels.get(BASE_IMAGE_LABEL)
    if value is not None:
        if not isinstance(value, str):
            raise ImageConfigError(_STRING_ASSERTION_FAILED)
        base_image = value
    else:
        labels[BASE_IMAGE_LABEL] = image

    return base_image, _dump(document)


def update_image_config_data(
    resolve_config: Callable[[str], ConfigBytes],
    config_data: ConfigBytes,
    image: str,
) -> ResolvedConfig:
    """Decide which image to build on and which configs to use.

    An image already carrying a ``BaseImage`` label was patched before: its
    config is kept as the patched config, and the base image's config, fetched
    through ``resolve_config``, becomes the one to build from.
    """
    base_image, user_config = setup_labels(image, config_data)
    if not base_image:
        return ResolvedConfig(config_data=user_config, patched_config_data=None, base_image=image)

    base_config = resolve_config(base_image)
    try:
        _, base_with_labels = setup_labels(base_image, base_config)
    except ImageConfigError:
        base_with_labels = None
    return ResolvedConfig(
        config_data=base_with_labels,
        patched_config_data=user_config,
        base_image=base_image,
    )


def normalize_config_for_platform(
    config_data: ConfigBytes, platform: Optional[PatchPlatform]
) -> bytes:
    """Set the OS, architecture and variant of the config to those of ``platform``."""
    if platform is None:
        raise ImageConfigError("platform is nil")

    document = _load_object(config_data)
    document["architecture"] = platform.architecture
    if platform.variant:
        document["variant"] = platform.variant
    else:
        document.pop("variant", None)
    document["os"] = platform.os
    return _dump(document)