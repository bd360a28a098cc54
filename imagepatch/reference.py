"""Parsing and normalisation of container image references."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_DOMAIN = "docker.io"
_LEGACY_DEFAULT_DOMAIN = "index.docker.io"
_OFFICIAL_REPO_PREFIX = "library/"
_NAME_TOTAL_LENGTH_MAX = 255

_ALPHANUMERIC = r"[a-z0-9]+"
_SEPARATOR = r"(?:[._]|__|[-]+)"
_PATH_COMPONENT = rf"{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*"
_REMOTE_NAME = rf"{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN_NAME = rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*"
_IPV6_ADDRESS = r"\[(?:[a-fA-F0-9:]+)\]"
_HOST = rf"(?:{_DOMAIN_NAME}|{_IPV6_ADDRESS})"
_DOMAIN_AND_PORT = rf"{_HOST}(?::[0-9]+)?"
_NAME = rf"(?:{_DOMAIN_AND_PORT}/)?{_REMOTE_NAME}"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"

_REFERENCE_RE = re.compile(rf"({_NAME})(?::({_TAG}))?(?:@({_DIGEST}))?", re.ASCII)
_NAME_SPLIT_RE = re.compile(rf"(?:({_DOMAIN_AND_PORT})/)?({_REMOTE_NAME})", re.ASCII)
_TAG_RE = re.compile(_TAG, re.ASCII)
_IDENTIFIER_RE = re.compile(r"[a-f0-9]{64}")

_DIGEST_LENGTHS = {"sha256": 64, "sha384": 96, "sha512": 128}


class ReferenceError(ValueError):
    """Raised when an image reference cannot be parsed."""


@dataclass(frozen=True)
class ImageReference:
    """A normalised image reference: registry domain, repository path, tag and digest."""

    domain: str
    path: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    def name(self) -> str:
        """The fully qualified repository name, without tag or digest."""
        return f"{self.domain}/{self.path}"

    def is_name_only(self) -> bool:
        """True when the reference carries neither a tag nor a digest."""
        return self.tag is None and self.digest is None

    def with_default_tag(self, tag: str) -> "ImageReference":
        """Return the reference with ``tag`` applied if it has no tag or digest."""
        if not self.is_name_only():
            return self
        if not _TAG_RE.fullmatch(tag):
            raise ReferenceError(f"invalid tag format: {tag!r}")
        return replace(self, tag=tag)

    def __str__(self) -> str:
        text = self.name()
        if self.tag is not None:
            text += f":{self.tag}"
        if self.digest is not None:
            text += f"@{self.digest}"
        return text


def _split_docker_domain(name: str) -> tuple[str, str]:
    slash = name.find("/")
    head = name[:slash] if slash >= 0 else ""
    if slash == -1 or (
        "." not in head and ":" not in head and head != "localhost" and head.lower() == head
    ):
        domain, remainder = DEFAULT_DOMAIN, name
    else:
        domain, remainder = head, name[slash + 1 :]
    if domain == _LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and "/" not in remainder:
        remainder = _OFFICIAL_REPO_PREFIX + remainder
    return domain, remainder


def _validate_digest(digest: str) -> None:
    algorithm, _, encoded = digest.partition(":")
    length = _DIGEST_LENGTHS.get(algorithm)
    if length is None:
        raise ReferenceError(f"unsupported digest algorithm: {algorithm}")
    if len(encoded) != length:
        raise ReferenceError("invalid checksum digest length")
    if not re.fullmatch(r"[a-f0-9]+", encoded):
        raise ReferenceError("invalid checksum digest format")


def _parse(text: str) -> ImageReference:
    match = _REFERENCE_RE.fullmatch(text)
    if match is None:
        if not text:
            raise ReferenceError("repository name must have at least one component")
        if _REFERENCE_RE.fullmatch(text.lower()):
            raise ReferenceError("invalid reference format: repository name must be lowercase")
        raise ReferenceError("invalid reference format")

    name, tag, digest = match.groups()
    if len(name) > _NAME_TOTAL_LENGTH_MAX:
        raise ReferenceError(
            f"repository name must not be more than {_NAME_TOTAL_LENGTH_MAX} characters"
        )
    split = _NAME_SPLIT_RE.fullmatch(name)
    if split is None or split.group(1) is None:
        raise ReferenceError("invalid reference format")
    if digest is not None:
        _validate_digest(digest)
    return ImageReference(domain=split.group(1), path=split.group(2), tag=tag, digest=digest)


def parse_normalized_named(ref: str) -> ImageReference:
    """Parse ``ref`` the way the docker CLI does, filling in the default registry."""
    if _IDENTIFIER_RE.fullmatch(ref):
        raise ReferenceError(
            f"invalid repository name ({ref}), cannot specify 64-byte hexadecimal strings"
        )
    domain, remainder = _split_docker_domain(ref)
    colon = remainder.find(":")
    remote_name = remainder[:colon] if colon >= 0 else remainder
    if remote_name.lower() != remote_name:
        raise ReferenceError(
            f"invalid reference format: repository name ({remote_name}) must be lowercase"
        )
    return _parse(f"{domain}/{remainder}")