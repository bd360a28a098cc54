"""Command-line options of the patch command and the checks made on them."""

from __future__ import annotations

import argparse
import enum
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional, Sequence

from imagepatch.dockerctx import DEFAULT_ADDR, ConnectionOptions
from imagepatch.platforms import PatchPlatform

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0
DEFAULT_SUFFIX = "patched"
DEFAULT_SCANNER = "trivy"
DEFAULT_FORMAT = "openvex"
DEFAULT_PLATFORM_ERRORS = "skip"

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "\u00b5s": 1e-6,
    "\u03bcs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_NUMBER_RE = re.compile(r"(\d*)(\.\d*)?")
_UNIT_RE = re.compile(r"[^\d.]*")

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class OptionsError(ValueError):
    """Raised when the patch command is given options it cannot use."""


class PatchMode(enum.Enum):
    """How an image is to be patched, as implied by the report options."""

    REPORT_FILE = "report-file"
    NO_REPORT = "no-report"
    MULTI_ARCH = "multi-arch"


@dataclass
class PatchOptions:
    """Everything the patch command was asked to do."""

    image: str = ""
    report_file: str = ""
    report_directory: str = ""
    patched_tag: str = ""
    suffix: str = DEFAULT_SUFFIX
    working_folder: str = ""
    timeout: float = DEFAULT_TIMEOUT
    scanner: str = DEFAULT_SCANNER
    ignore_errors: bool = False
    format: str = DEFAULT_FORMAT
    output: str = ""
    connection: ConnectionOptions = field(default_factory=ConnectionOptions)
    platform_specific_errors: str = DEFAULT_PLATFORM_ERRORS
    push: bool = False


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise OptionsError(message)


def parse_duration(text: str) -> float:
    """Parse a duration such as ``5m``, ``1h30m`` or ``1.5s`` into seconds."""
    original = text
    negative = False
    if text and text[0] in "+-":
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise OptionsError(f'time: invalid duration "{original}"')

    total = 0.0
    while text:
        number = _NUMBER_RE.match(text)
        whole, fraction = number.group(1), number.group(2) or ""
        if not whole and len(fraction) <= 1:
            raise OptionsError(f'time: invalid duration "{original}"')
        text = text[number.end():]

        unit = _UNIT_RE.match(text).group(0)
        if not unit:
            raise OptionsError(f'time: missing unit in duration "{original}"')
        if unit not in _UNITS:
            raise OptionsError(f'time: unknown unit "{unit}" in duration "{original}"')
        text = text[len(unit):]

        total += float((whole or "0") + fraction) * _UNITS[unit]
    return -total if negative else total


def _duration_type(text: str) -> float:
    try:
        return parse_duration(text)
    except OptionsError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _bool_type(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f'invalid boolean value "{text}"')


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser of the patch command."""
    parser = _Parser(
        prog="copa patch",
        description="Patch container images with upgrade packages specified by a vulnerability report",
        epilog="example: copa patch -i images/python:3.7-alpine -r trivy.json -t 3.7-alpine-patched",
    )
    add = parser.add_argument
    add("-i", "--image", default="", help="Application image name and tag to patch")
    add("-r", "--report", dest="report_file", default="", help="Vulnerability report file path")
    add("-t", "--tag", dest="patched_tag", default="", help="Tag for the patched image")
    add(
        "--tag-suffix",
        dest="suffix",
        default=DEFAULT_SUFFIX,
        help="Suffix for the patched image (if no explicit --tag provided)",
    )
    add(
        "-w",
        "--working-folder",
        default="",
        help="Working folder, defaults to system temp folder",
    )
    add(
        "-a",
        "--addr",
        default="",
        help="Address of buildkitd service, defaults to local docker daemon with fallback to "
        + DEFAULT_ADDR,
    )
    add("--cacert", default="", help="Absolute path to buildkitd CA certificate")
    add("--cert", default="", help="Absolute path to buildkit client certificate")
    add("--key", default="", help="Absolute path to buildkit client key")
    add(
        "--timeout",
        type=_duration_type,
        default=DEFAULT_TIMEOUT,
        help="Timeout for the operation, defaults to '5m'",
    )
    add(
        "-s",
        "--scanner",
        default=DEFAULT_SCANNER,
        help="Scanner used to generate the report, defaults to 'trivy'",
    )
    add(
        "--ignore-errors",
        type=_bool_type,
        nargs="?",
        const=True,
        default=False,
        help="Ignore errors and continue patching",
    )
    add("-f", "--format", default=DEFAULT_FORMAT, help="Output format, defaults to 'openvex'")
    add("-o", "--output", default="", help="Output file path")
    add("--report-directory", default="", help="Directory with multi-arch report files")
    add(
        "--platform-specific-errors",
        default=DEFAULT_PLATFORM_ERRORS,
        help="Behavior for error in patching any of sub-images for multi-arch patching: "
        "'skip', 'warn', or 'fail'",
    )
    add(
        "-p",
        "--push",
        type=_bool_type,
        nargs="?",
        const=True,
        default=False,
        help="Push patched image to destination registry",
    )
    return parser


def parse_patch_args(argv: Optional[Sequence[str]] = None) -> PatchOptions:
    """Parse patch command arguments; ``--image`` is required."""
    args = build_parser().parse_args(list(sys.argv[1:] if argv is None else argv))
    if not args.image:
        raise OptionsError('required flag(s) "image" not set')
    return PatchOptions(
        image=args.image,
        report_file=args.report_file,
        report_directory=args.report_directory,
        patched_tag=args.patched_tag,
        suffix=args.suffix,
        working_folder=args.working_folder,
        timeout=args.timeout,
        scanner=args.scanner,
        ignore_errors=args.ignore_errors,
        format=args.format,
        output=args.output,
        connection=ConnectionOptions(
            addr=args.addr,
            ca_cert_path=args.cacert,
            cert_path=args.cert,
            key_path=args.key,
        ),
        platform_specific_errors=args.platform_specific_errors,
        push=args.push,
    )


def determine_patch_mode(options: PatchOptions) -> PatchMode:
    """Check the report options and say which kind of patching they call for."""
    log.debug("Handling platform specific errors with %s", options.platform_specific_errors)
    report_file = options.report_file
    report_directory = options.report_directory

    if report_file and report_directory:
        raise OptionsError("both report file and directory provided, please provide only one")

    if report_file:
        if not os.path.exists(report_file):
            raise OptionsError(f"report file {report_file} does not exist")
        if os.path.isdir(report_file):
            raise OptionsError(
                f"report file {report_file} is a directory, please provide a file"
            )
        log.debug("Using report file: %s", report_file)
        return PatchMode.REPORT_FILE

    if not report_directory:
        return PatchMode.NO_REPORT

    try:
        is_dir = os.path.isdir(report_directory)
        os.stat(report_directory)
    except OSError as exc:
        raise OptionsError(str(exc)) from exc
    if not is_dir:
        raise OptionsError(
            f"provided report directory path {report_directory} is not a directory"
        )
    return PatchMode.MULTI_ARCH


def handle_platform_error(policy: str, platform: PatchPlatform, error: BaseException) -> None:
    """Apply the per-platform error policy to a failed platform.

    ``ignore`` and ``skip`` let the other platforms carry on (``skip`` logs a
    warning); any other policy raises.
    """
    if policy == "ignore":
        return
    if policy == "skip":
        log.warning("Ignoring error for platform %s: %s", platform.key(), error)
        return
    raise RuntimeError(f"platform {platform.key()} failed: {error}") from error