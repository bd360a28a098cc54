"""Locating the docker daemon and describing buildkit connection options."""

from __future__ import annotations

import json
import os
import subprocess
from dataclasses import dataclass
from typing import Iterable, Union
from urllib.parse import urlsplit

DEFAULT_ADDR = "unix:///run/buildkit/buildkitd.sock"


class DockerContextError(RuntimeError):
    """Raised when the docker context cannot be inspected or read."""


class NoDockerContextError(DockerContextError):
    """Raised when no docker context is marked as current."""

    def __init__(self, message: str = "no docker context found") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class ConnectionOptions:
    """Address of a buildkit daemon and the TLS files used to reach it."""

    addr: str = ""
    ca_cert_path: str = ""
    cert_path: str = ""
    key_path: str = ""


def get_server_name_from_addr(addr: str) -> str:
    """Return the host name of ``addr``, or an empty string when it has none."""
    try:
        parts = urlsplit(addr)
    except ValueError:
        return ""
    host = parts.netloc.rpartition("@")[2]
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end >= 0 else host[1:]
    if ":" in host:
        return host.rpartition(":")[0]
    return host


def credential_options(opts: ConnectionOptions) -> dict[str, str]:
    """Describe the TLS settings implied by ``opts``.

    ``server_name`` and ``ca_cert`` appear when a CA certificate is given;
    ``cert`` and ``key`` appear when either client file is given.
    """
    result: dict[str, str] = {}
    if opts.ca_cert_path:
        result["server_name"] = get_server_name_from_addr(opts.addr)
        result["ca_cert"] = opts.ca_cert_path
    if opts.cert_path or opts.key_path:
        result["cert"] = opts.cert_path
        result["key"] = opts.key_path
    return result


def addr_from_context(name: str) -> str:
    """Return the docker endpoint configured for the context ``name``."""
    command = ["docker", "context", "inspect", name, "--format", "{{.Endpoints.docker.Host}}"]
    try:
        proc = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise DockerContextError(
            f"error inspecting docker context {json.dumps(name)}: {exc}"
        ) from exc
    output = proc.stdout or ""
    if proc.returncode != 0:
        raise DockerContextError(
            f"error inspecting docker context {json.dumps(name)}: "
            f"exit status {proc.returncode}: {output}"
        )
    return output.strip()


def select_current_endpoint(lines: Union[str, Iterable[str]]) -> str:
    """Return the endpoint of the current context from ``docker context ls`` JSON output."""
    text = lines if isinstance(lines, str) else "\n".join(lines)
    decoder = json.JSONDecoder()
    pos = 0
    while True:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            raise NoDockerContextError()
        try:
            entry, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as exc:
            raise DockerContextError(f"error decoding docker context ls output: {exc}") from exc
        if not isinstance(entry, dict):
            raise DockerContextError(
                "error decoding docker context ls output: expected a JSON object"
            )
        if entry.get("Current") is True:
            return str(entry.get("DockerEndpoint", ""))


def addr_from_docker_context() -> str:
    """Return the docker endpoint of the context in use.

    ``DOCKER_CONTEXT`` wins when set; otherwise the context marked current by
    ``docker context ls`` is used.
    """
    name = os.environ.get("DOCKER_CONTEXT", "")
    if name:
        return addr_from_context(name)

    try:
        proc = subprocess.run(
            ["docker", "context", "ls", "--format", "json"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise DockerContextError(f"error starting docker context ls: {exc}") from exc

    try:
        endpoint = select_current_endpoint(proc.stdout or "")
    except DockerContextError as exc:
        if proc.returncode != 0:
            raise DockerContextError(
                f"exit status {proc.returncode}: {exc}: {proc.stderr or ''}"
            ) from exc
        raise
    if proc.returncode != 0:
        raise DockerContextError(f"exit status {proc.returncode}")
    return endpoint