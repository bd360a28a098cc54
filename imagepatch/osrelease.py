"""Reading /etc/os-release data and classifying the distribution."""

from __future__ import annotations

import json
import logging
from typing import Optional, Union

log = logging.getLogger(__name__)

_OS_FAMILIES = (
    ("alpine", "alpine"),
    ("debian", "debian"),
    ("ubuntu", "ubuntu"),
    ("amazon", "amazon"),
    ("centos", "centos"),
    ("mariner", "cbl-mariner"),
    ("azure linux", "azurelinux"),
    ("red hat", "redhat"),
    ("rocky", "rocky"),
    ("oracle", "oracle"),
    ("alma", "alma"),
)


class OSReleaseError(ValueError):
    """Raised when os-release data cannot be parsed."""


class UnsupportedOSError(Exception):
    """Raised when the distribution named in os-release is not supported."""

    def __init__(self, os_type: str = "") -> None:
        super().__init__("unsupported operation")
        self.os_type = os_type


def _unquote(value: str, line: str) -> str:
    out: list[str] = []
    quote: Optional[str] = None
    escaped = False
    for ch in value:
        if escaped:
            if quote == '"' and ch not in '$"\\`':
                out.append("\\")
            out.append(ch)
            escaped = False
            continue
        if quote == "'":
            if ch == "'":
                quote = None
            else:
                out.append(ch)
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"' or (ch == "'" and quote is None):
            quote = None if quote == ch else ch
            continue
        out.append(ch)
    if quote is not None or escaped:
        raise OSReleaseError(f"osrelease: unterminated quoting in line {json.dumps(line)}")
    return "".join(out)


def parse_os_release(data: Union[bytes, str, None]) -> dict[str, str]:
    """Parse os-release content into a mapping of keys to unquoted values."""
    if data is None:
        return {}
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    result: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            raise OSReleaseError(f"osrelease: malformed line {json.dumps(line)}")
        result[key.strip()] = _unquote(value.strip(), line)
    return result


def _parse_or_raise(data: Union[bytes, str, None]) -> dict[str, str]:
    try:
        return parse_os_release(data)
    except OSReleaseError as exc:
        raise OSReleaseError(f"unable to parse os-release data {exc}") from exc


def get_os_type(data: Union[bytes, str, None]) -> str:
    """Return the supported OS family named by the os-release NAME field."""
    name = _parse_or_raise(data).get("NAME", "").lower()
    for needle, family in _OS_FAMILIES:
        if needle in name:
            return family
    log.error("unsupported osType %s", name)
    raise UnsupportedOSError(name)


def get_os_version(data: Union[bytes, str, None]) -> str:
    """Return the VERSION_ID field, or an empty string when absent."""
    return _parse_or_raise(data).get("VERSION_ID", "")