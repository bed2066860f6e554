"""Typed queries against the deployed stack.

Each inspector issues at most one external command and returns a ``Lookup``
holding either the parsed value or a short error string.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from core.logging import logger as LOGGER
from core.process import short_error
from runtime.compose import ComposeStack, Lookup, compose_services


def resolve_runtime_service(document: dict[str, Any], candidates: Sequence[str]) -> str | None:
    """Return the first candidate service declared in the compose document."""

    services = compose_services(document)
    for candidate in candidates:
        if candidate in services:
            return candidate
    return None


def resolve_gateway_service(
    document: dict[str, Any],
    gateway_service: str,
    runtime_service: str | None,
) -> str | None:
    if gateway_service in compose_services(document):
        return gateway_service
    return runtime_service


def container_id(stack: ComposeStack, service: str) -> Lookup[str]:
    result = stack.compose(["ps", "-q", service])
    if not result.ok:
        return Lookup.missing(short_error(result))

    value = result.stdout.strip()
    if not value:
        LOGGER.warning("No container id reported for %s", service)
        return Lookup.missing(f"{service} container id not found.")
    return Lookup.found(value.splitlines()[0].strip())


def container_state(stack: ComposeStack, container: str) -> Lookup[str]:
    result = stack.docker(["inspect", container, "--format", "{{.State.Status}}"])
    if not result.ok:
        return Lookup.missing(short_error(result))

    status = result.stdout.strip()
    if not status:
        return Lookup.missing("Container state is empty.")
    return Lookup.found(status)


def _inspect_json(stack: ComposeStack, container: str, template: str) -> Lookup[Any]:
    result = stack.docker(["inspect", container, "--format", f"{{{{json {template}}}}}"])
    if not result.ok:
        return Lookup.missing(short_error(result))

    raw = result.stdout.strip()
    try:
        return Lookup(value=json.loads(raw) if raw else None)
    except json.JSONDecodeError:
        LOGGER.warning("Unparseable %s for %s: %r", template, container, raw)
        return Lookup.missing(f"Unable to parse {template.lstrip('.')}: {raw or '(empty)'}")


def container_network(stack: ComposeStack, container: str) -> Lookup[str]:
    """Return the first network the container is attached to."""

    networks = _inspect_json(stack, container, ".NetworkSettings.Networks")
    if networks.error:
        return Lookup.missing(networks.error)
    if not isinstance(networks.value, dict) or not networks.value:
        return Lookup.missing("No docker network found for the runtime container.")
    return Lookup.found(next(iter(networks.value)))


def host_tmpfs(stack: ComposeStack, container: str) -> Lookup[dict[str, str]]:
    """Return ``HostConfig.Tmpfs``; Docker does not list tmpfs under ``.Mounts``."""

    tmpfs = _inspect_json(stack, container, ".HostConfig.Tmpfs")
    if tmpfs.error:
        return Lookup.missing(tmpfs.error)
    if tmpfs.value is None:
        return Lookup.found({})
    if not isinstance(tmpfs.value, dict):
        return Lookup.missing(f"Unexpected HostConfig.Tmpfs payload: {tmpfs.value!r}")
    return Lookup.found({str(key): str(value) for key, value in tmpfs.value.items()})


def host_dns(stack: ComposeStack, container: str) -> Lookup[list[str]]:
    dns = _inspect_json(stack, container, ".HostConfig.Dns")
    if dns.error:
        return Lookup.missing(dns.error)
    if dns.value is None:
        return Lookup.found([])
    if not isinstance(dns.value, list):
        return Lookup.missing(f"Unexpected HostConfig.Dns payload: {dns.value!r}")
    return Lookup.found([str(entry) for entry in dns.value])


def log_tail(stack: ComposeStack, service: str, tail: int) -> Lookup[str]:
    """Return the last ``tail`` log lines, stdout then stderr."""

    result = stack.logs(service, tail)
    if not result.ok:
        return Lookup.missing(short_error(result))
    return Lookup.found(result.output)
