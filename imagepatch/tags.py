"""Tag naming for patched images and related housekeeping."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Iterable, Tuple, Union

from imagepatch.reference import ImageReference, parse_normalized_named

log = logging.getLogger(__name__)

DEFAULT_SUFFIX = "patched"


def arch_tag(base: str, arch: str, variant: str = "") -> str:
    """Return a per-architecture tag such as ``patched-arm64`` or ``patched-arm-v7``."""
    if variant:
        return f"{base}-{arch}-{variant}"
    return f"{base}-{arch}"


def resolve_patched_tag(image_ref: ImageReference, explicit_tag: str = "", suffix: str = "") -> str:
    """Work out the patched tag from an explicit tag or the image tag plus suffix."""
    if explicit_tag:
        return explicit_tag
    suffix = suffix or DEFAULT_SUFFIX
    if not image_ref.tag:
        raise ValueError(f"no tag found in image reference {image_ref}")
    return f"{image_ref.tag}-{suffix}"


def get_repo_name_with_digest(patched_image_name: str, image_digest: str) -> str:
    """Return the last path component of the image name, without tag, joined to the digest."""
    last = patched_image_name.split("/")[-1]
    last = last.partition(":")[0]
    return f"{last}@{image_digest}"


def remove_if_not_debug(working_folder: Union[str, os.PathLike], debug: bool = False) -> None:
    """Delete the working folder unless debugging, when it is kept for inspection."""
    if debug:
        log.warning(
            "--debug specified, working folder at %s needs to be manually cleaned up",
            os.fspath(working_folder),
        )
        return
    shutil.rmtree(working_folder, ignore_errors=True)


def manifest_create_args(
    image: str, final_tag: str, items: Iterable[Tuple[str, str]]
) -> list[str]:
    """Command line that creates a manifest list from ``(tag, digest)`` pairs."""
    repo = parse_normalized_named(image).name()
    args = ["docker", "buildx", "imagetools", "create", "--tag", f"{repo}:{final_tag}"]
    args.extend(f"{tag}@sha256:{digest}" for tag, digest in items)
    return args