"""Target platforms for patching and the helpers that discover and check them."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Tuple, Union

LINUX = "linux"
DEFAULT_BINFMT_DIR = "/proc/sys/fs/binfmt_misc"

_SUPPORTED_OS_TYPES = frozenset(
    {
        "alpine",
        "debian",
        "ubuntu",
        "cbl-mariner",
        "azurelinux",
        "centos",
        "oracle",
        "redhat",
        "rocky",
        "amazon",
        "alma",
    }
)

_SIMPLE_ARCHES = {
    "amd64": "x86_64",
    "amd64p32": "x86_64",
    "386": "i386",
    "arm64": "aarch64",
    "arm64be": "aarch64",
    "loong64": "loongarch64",
}

# Architectures whose QEMU name gains a suffix when the variant ends in it.
_VARIANT_SUFFIXED = {
    "ppc64": ("le", "ppc64le"),
    "sh4": ("eb", "sh4eb"),
    "xtensa": ("eb", "xtensaeb"),
    "microblaze": ("el", "microblazeel"),
}


@dataclass(frozen=True)
class PatchPlatform:
    """A platform to patch, optionally tied to the report describing it."""

    os: str
    architecture: str
    variant: str = ""
    report_file: str = ""

    def key(self) -> str:
        """The ``os/architecture`` string identifying this platform."""
        return f"{self.os}/{self.architecture}"


def map_go_arch(arch: str, variant: str = "") -> str:
    """Map a Go-style architecture and variant to the name QEMU uses."""
    if arch in _SIMPLE_ARCHES:
        return _SIMPLE_ARCHES[arch]
    if arch == "arm":
        return "armeb" if variant.endswith("eb") or arch.endswith("be") else "arm"
    if arch == "mips":
        return "mipsel" if arch.endswith("le") else "mips"
    if arch == "mips64":
        if variant.endswith("n32"):
            return "mipsn32"
        return "mips64el" if arch.endswith("le") else "mips64"
    if arch == "mips64le":
        return "mipsn32el" if variant.endswith("n32") else "mips64el"
    if arch in _VARIANT_SUFFIXED:
        suffix, name = _VARIANT_SUFFIXED[arch]
        return name if variant.endswith(suffix) else arch
    return arch


def is_supported_os_type(os_type: str) -> bool:
    """True for the Linux distribution families that can be patched."""
    return os_type in _SUPPORTED_OS_TYPES


def _binfmt_entries(binfmt_dir: Path) -> Iterable[Path]:
    try:
        entries = sorted(binfmt_dir.iterdir())
    except OSError:
        return []
    return [
        entry
        for entry in entries
        if entry.name not in ("register", "status") and not entry.is_dir()
    ]


def qemu_available(
    platform: Optional[PatchPlatform],
    binfmt_dir: Union[str, os.PathLike] = DEFAULT_BINFMT_DIR,
) -> bool:
    """Report whether QEMU emulation is registered or installed for ``platform``."""
    if platform is None:
        return False

    arch_key = map_go_arch(platform.architecture, platform.variant)
    needle = f"qemu-{arch_key}".encode()

    for entry in _binfmt_entries(Path(binfmt_dir)):
        try:
            data = entry.read_bytes()
        except OSError:
            continue
        if b"interpreter" in data and needle in data:
            return True

    # Rootless setups may only have the static interpreter on PATH.
    return shutil.which(f"qemu-{arch_key}-static") is not None


def discover_platforms_from_reports(
    report_dir: Union[str, os.PathLike],
    parse_report: Callable[[str], Tuple[str, str]],
) -> list[PatchPlatform]:
    """Build one platform per supported report file found in ``report_dir``.

    ``parse_report`` takes a report path and returns its ``(os_type, arch)``.
    Reports for unsupported OS types are skipped; parse failures are raised.
    """
    directory = os.fspath(report_dir)
    platforms: list[PatchPlatform] = []
    for entry in sorted(os.scandir(directory), key=lambda e: e.name):
        if entry.is_dir():
            continue
        path = f"{directory}/{entry.name}"
        try:
            os_type, arch = parse_report(path)
        except Exception as exc:
            raise ValueError(f"error parsing report {exc}") from exc
        if not is_supported_os_type(os_type):
            continue
        platforms.append(PatchPlatform(os=LINUX, architecture=arch, report_file=path))
    return platforms


def intersect_platforms(
    reference_platforms: Optional[Sequence[PatchPlatform]],
    report_platforms: Optional[Sequence[PatchPlatform]],
) -> list[PatchPlatform]:
    """Keep the image's platforms that also have a report, in image order.

    With no report platforms every image platform is kept. An image that is
    not multi-arch (``None``) is an error.
    """
    if reference_platforms is None:
        raise ValueError("image is not multi arch")
    if report_platforms is None:
        return list(reference_platforms)
    reported = {platform.key() for platform in report_platforms}
    return [platform for platform in reference_platforms if platform.key() in reported]


def array_file(lines: Iterable[str]) -> bytes:
    """Join ``lines`` into file contents, each line ending in a newline."""
    return "".join(f"{line}\n" for line in lines).encode()