"""Shared state for one verification run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from config.controller import VerifierSettings
from config.profile import PolicyProfile
from runtime.compose import ComposeStack, Lookup, StackLocation


TOKEN_NOT_PLACEHOLDER = "Gateway token is not default placeholder"
TMPFS_OVERLAY = "Gateway runtime tmpfs overlay configured"
TOKEN_EXTERNALIZED = "Compose keeps gateway token externalized"
SELECTED_PORTS = "Selected ports are valid and wired via interpolation"
NO_HARDCODED_PORTS = "Compose has no hardcoded gateway/bridge literals"
PORT_EXPOSURE = "Gateway/bridge ports exposure matches profile"
COMPOSE_PARSES = "Compose declaration parses"

RUNTIME_DIRS_WRITABLE = "Gateway writable runtime dirs (canvas/cron)"
STARTUP_CONFIG = "Gateway startup configuration"
TMPFS_RUNTIME = "Gateway runtime tmpfs active (HostConfig.Tmpfs)"
NON_ROOT = "Container runs as non-root"
DOCKER_SOCKET = "Docker socket not mounted"
DNS_FORCED = "DNS forced through dns_allowlist"
EGRESS_BLOCKED = "Egress blocked to non-allowlisted domains"
EGRESS_ALLOWED = "Egress works to allowlisted domains"
DIRECT_IP = "Direct-to-IP HTTPS reachable"
FIREWALL_ENABLED = "Firewall service enabled"


@dataclass(frozen=True)
class CheckContext:
    """Everything the battery reads, gathered once before checks run.

    ``compose`` is an empty mapping when the declaration could not be read or
    parsed; ``compose_source`` and ``env`` keep the underlying error.
    """

    settings: VerifierSettings
    profile: PolicyProfile
    location: StackLocation
    stack: ComposeStack
    compose: dict[str, Any]
    compose_source: Lookup[str]
    env: Lookup[dict[str, str]]
    runtime_service: str | None
    gateway_service: str | None
    direct_ip_policy: str
