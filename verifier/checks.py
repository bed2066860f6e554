"""Static checks over the generated compose declaration and env file."""

from __future__ import annotations

from dataclasses import dataclass
import json
import re
from typing import Any

from config.controller import VerifierSettings
from diagnostics.models import CheckResult, failed, passed, warned
from runtime.compose import Lookup, compose_service
from verifier.context import (
    NO_HARDCODED_PORTS,
    PORT_EXPOSURE,
    SELECTED_PORTS,
    TMPFS_OVERLAY,
    TOKEN_EXTERNALIZED,
    TOKEN_NOT_PLACEHOLDER,
)


_PORT_VALUE_RE = re.compile(r"^\d+$")
_PUBLIC_HOST_IPS = {"", "0.0.0.0", "::"}
LOOPBACK_HOST_IP = "127.0.0.1"


def interpolation(variable: str) -> str:
    return "${" + variable + "}"


def check_gateway_token(env: Lookup[dict[str, str]], settings: VerifierSettings) -> CheckResult:
    """The generated secret must be set, not the placeholder, and long enough."""

    name = TOKEN_NOT_PLACEHOLDER
    var = settings.secret_env_var
    if not env.ok:
        return failed(name, env.error or ".env file unavailable")

    token = env.value.get(var, "").strip()
    if not token:
        return failed(name, f"{var} is missing in .env.")
    if token == settings.secret_placeholder:
        return failed(name, f"{var} is still set to '{settings.secret_placeholder}'.")
    if len(token) < settings.secret_min_length:
        return failed(
            name,
            f"{var} is too short ({len(token)} chars; expected >= {settings.secret_min_length}).",
        )
    return passed(name, f"{var} is set (length={len(token)}).")


def check_token_externalized(
    compose_source: Lookup[str],
    env: Lookup[dict[str, str]],
    settings: VerifierSettings,
    name: str = TOKEN_EXTERNALIZED,
) -> CheckResult:
    """The declaration must use ``${VAR}`` and never embed the literal secret."""

    var = settings.secret_env_var
    reference = interpolation(var)
    if not compose_source.ok:
        return failed(name, compose_source.error or "compose file unavailable")
    if reference not in compose_source.value:
        return failed(name, f"docker-compose.yml is missing {reference} interpolation.")
    if not env.ok:
        return failed(name, env.error or ".env file unavailable")

    token = env.value.get(var, "").strip()
    if token and token != settings.secret_placeholder and token in compose_source.value:
        return failed(name, "docker-compose.yml contains the literal gateway token from .env.")
    return passed(
        name,
        f"docker-compose.yml uses {reference} and does not contain the literal token.",
    )


def _tmpfs_entries(service: dict[str, Any]) -> list[str]:
    raw = service.get("tmpfs") or []
    if isinstance(raw, str):
        raw = [raw]
    return [str(entry) for entry in raw]


def check_tmpfs_overlay(document: dict[str, Any], settings: VerifierSettings) -> CheckResult:
    """The gateway declaration must mount both runtime paths as tmpfs."""

    name = TMPFS_OVERLAY
    service = compose_service(document, settings.gateway_service)
    if service is None:
        return failed(name, f"{settings.gateway_service} service is missing from docker-compose.yml.")

    entries = _tmpfs_entries(service)
    missing = [
        path
        for path in settings.runtime_tmpfs_paths
        if not any(entry == path or entry.startswith(f"{path}:") for entry in entries)
    ]
    if missing:
        return failed(
            name,
            f"Missing tmpfs entries for: {', '.join(missing)}. "
            f"Expected entries like: {' ; '.join(settings.runtime_tmpfs_expected)}",
        )
    return passed(name, f"tmpfs configured on {settings.gateway_service}: {', '.join(entries)}")


def _parse_port(value: str | None) -> int | None:
    if value is None:
        return None
    trimmed = value.strip()
    if not _PORT_VALUE_RE.match(trimmed):
        return None
    return int(trimmed)


def check_selected_ports(
    env: Lookup[dict[str, str]],
    compose_source: Lookup[str],
    settings: VerifierSettings,
) -> CheckResult:
    name = SELECTED_PORTS
    if not env.ok:
        return failed(name, env.error or ".env file unavailable")

    gateway, bridge = settings.gateway_port, settings.bridge_port
    values = {
        var: _parse_port(env.value.get(var))
        for role in settings.port_roles
        for var in (role.host_env, role.container_env)
    }
    if any(value is None for value in values.values()):
        return failed(name, "Port values in .env must be integers for host and container ports.")

    for role in settings.port_roles:
        port = values[role.host_env]
        if not role.in_range(port):
            return failed(
                name,
                f"{role.host_env}={port} is outside {role.min_port}-{role.max_port}.",
            )

    gateway_port = values[gateway.host_env]
    bridge_port = values[bridge.host_env]
    if gateway_port == bridge_port:
        return failed(name, f"{gateway.host_env} and {bridge.host_env} must be distinct.")

    if not compose_source.ok:
        return failed(name, compose_source.error or "compose file unavailable")
    missing = [var for var in values if interpolation(var) not in compose_source.value]
    if missing:
        return failed(
            name,
            "docker-compose.yml must use host and container port interpolation variables "
            f"(missing: {', '.join(interpolation(var) for var in missing)}).",
        )

    if gateway_port != gateway.default or bridge_port != bridge.default:
        return warned(
            name,
            f"Ports were auto-adjusted due to collision (gateway={gateway_port}, bridge={bridge_port}).",
        )
    return passed(
        name,
        f"Using default ports (gateway={gateway_port}, bridge={bridge_port}), distinct and each "
        "within its own configured range.",
    )


def check_no_hardcoded_ports(compose_source: Lookup[str], settings: VerifierSettings) -> CheckResult:
    name = NO_HARDCODED_PORTS
    if not compose_source.ok:
        return failed(name, compose_source.error or "compose file unavailable")

    source = compose_source.value
    gateway_url = (
        f"http://{settings.gateway_service}:{interpolation(settings.gateway_port.container_env)}"
    )
    if gateway_url not in source:
        return failed(name, f"The internal gateway URL must use {gateway_url}.")

    defaults = [str(role.default) for role in settings.port_roles]
    literal_re = re.compile(r"\b(?:" + "|".join(defaults) + r")\b")
    found = sorted(set(literal_re.findall(source)))
    if found:
        return failed(name, f"docker-compose.yml contains hardcoded {'/'.join(found)} literals.")
    return passed(name, "docker-compose.yml uses interpolation for gateway/bridge ports and URL.")


@dataclass(frozen=True)
class PortBinding:
    host_ip: str
    container_port: str
    raw: str

    @property
    def is_public(self) -> bool:
        return self.host_ip in _PUBLIC_HOST_IPS


def parse_port_binding(entry: Any) -> PortBinding | None:
    """Parse short (``ip:host:container``) or long (mapping) port syntax."""

    if isinstance(entry, str):
        parts = entry.split(":")
        if len(parts) >= 3:
            return PortBinding(host_ip=parts[0], container_port=parts[-1], raw=entry)
        if len(parts) == 2:
            return PortBinding(host_ip="0.0.0.0", container_port=parts[1], raw=entry)
        return None

    if isinstance(entry, dict):
        target = str(entry.get("target") or "")
        if not target:
            return None
        host_ip = entry.get("host_ip")
        raw = json.dumps(
            {"host_ip": host_ip, "published": entry.get("published"), "target": entry.get("target")}
        )
        return PortBinding(
            host_ip="0.0.0.0" if host_ip is None else str(host_ip),
            container_port=target,
            raw=raw,
        )
    return None


def check_port_exposure(
    document: dict[str, Any],
    runtime_service: str | None,
    public_listen: bool,
    settings: VerifierSettings,
) -> CheckResult:
    """Published ports must match the profile's exposure intent."""

    name = PORT_EXPOSURE
    if runtime_service is None:
        return failed(
            name,
            f"No runtime service found. Expected one of: {', '.join(settings.runtime_service_candidates)}",
        )

    service = compose_service(document, runtime_service) or {}
    bindings = [
        binding
        for binding in (parse_port_binding(entry) for entry in service.get("ports") or [])
        if binding is not None
    ]
    required = [interpolation(role.container_env) for role in settings.port_roles]
    missing = [port for port in required if not any(b.container_port == port for b in bindings)]
    if missing:
        return failed(name, f"Missing published ports on {runtime_service}: {', '.join(missing)}")

    relevant = [binding for binding in bindings if binding.container_port in required]
    if not public_listen:
        non_local = [binding.raw for binding in relevant if binding.host_ip != LOOPBACK_HOST_IP]
        if non_local:
            return failed(
                name,
                f"public_listen=false but found non-local bindings: {', '.join(non_local)}",
            )
        return passed(
            name,
            f"public_listen=false and ports are localhost-only: {', '.join(b.raw for b in relevant)}",
        )

    public = [binding.raw for binding in relevant if binding.is_public]
    if public:
        return warned(name, f"public_listen=true and public bindings are enabled: {', '.join(public)}")
    return passed(name, "public_listen=true but ports are not publicly bound.")
