"""Policy profile loading and validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
from typing import Any

import yaml


_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9.-]+$")

EGRESS_MODES = ("dns-allowlist", "proxy-only")
DIRECT_IP_POLICIES = ("warn", "fail")
APPROVAL_MODES = ("allow", "require", "deny")


class ProfileError(Exception):
    """Raised when a profile cannot be found, parsed or validated."""


@dataclass(frozen=True)
class PolicyProfile:
    """Read-only policy consumed by the verifier."""

    name: str
    exec_approvals: str
    public_listen: bool = False
    allow_unconfigured: bool = True
    webui_enabled: bool = False
    egress_default: str = "deny"
    allowlist: tuple[str, ...] = field(default_factory=tuple)
    allow_ports: tuple[int, ...] = field(default_factory=tuple)
    egress_mode: str = "dns-allowlist"
    direct_ip_policy: str = "warn"


def profile_path(profile_name: str, profiles_dir: Path) -> Path:
    return profiles_dir / f"{profile_name}.yaml"


def load_profile(profile_name: str, profiles_dir: Path | None = None) -> PolicyProfile:
    """Load ``profiles/<name>.yaml`` and validate it.

    Args:
        profile_name: Profile file stem.
        profiles_dir: Directory holding profile files; defaults to
            ``./profiles``.

    Returns:
        The validated profile.

    Raises:
        ProfileError: When the file is missing, not YAML, or violates the
            schema. All violations are reported in one message.
    """

    root = profiles_dir if profiles_dir is not None else Path.cwd() / "profiles"
    path = profile_path(profile_name, root).resolve()
    if not path.exists():
        raise ProfileError(f"Profile not found: '{profile_name}' ({path})")

    try:
        with path.open("r", encoding="utf-8") as file:
            raw = yaml.safe_load(file)
    except yaml.YAMLError as exc:
        message = " ".join(str(exc).split())
        raise ProfileError(f"Invalid YAML in {path}: {message}") from exc

    return parse_profile(profile_name, raw, source=str(path))


def parse_profile(profile_name: str, raw: Any, source: str = "<memory>") -> PolicyProfile:
    """Validate a parsed profile document and apply defaults."""

    issues: list[str] = []
    if not isinstance(raw, dict):
        raise ProfileError(f"Profile validation failed for {source}: (root): expected a mapping")

    openclaw = _section(raw, "openclaw", issues, required=True)
    gateway = _section(openclaw, "gateway", issues, prefix="openclaw")
    webui = _section(openclaw, "webui", issues, prefix="openclaw")
    approvals = _section(openclaw, "approvals", issues, prefix="openclaw", required="openclaw" in raw)
    network = _section(raw, "network", issues)

    exec_mode = approvals.get("exec")
    if "approvals" in openclaw and exec_mode not in APPROVAL_MODES:
        issues.append(f"openclaw.approvals.exec: expected one of {', '.join(APPROVAL_MODES)}")

    public_listen = _bool(gateway, "public_listen", False, "openclaw.gateway", issues)
    allow_unconfigured = _bool(gateway, "allow_unconfigured", True, "openclaw.gateway", issues)
    webui_enabled = _bool(webui, "enabled", False, "openclaw.webui", issues)

    egress_default = network.get("egress_default", "deny")
    if egress_default not in ("deny", "allow"):
        issues.append("network.egress_default: expected one of deny, allow")

    allowlist = network.get("allow", [])
    if not isinstance(allowlist, list):
        issues.append("network.allow: expected a list")
        allowlist = []
    for index, domain in enumerate(allowlist):
        if not isinstance(domain, str) or not domain:
            issues.append(f"network.allow.{index}: domain cannot be empty")
        elif not _DOMAIN_RE.match(domain):
            issues.append(f"network.allow.{index}: domain contains unsupported characters")

    allow_ports = network.get("allow_ports", [])
    if not isinstance(allow_ports, list):
        issues.append("network.allow_ports: expected a list")
        allow_ports = []
    for index, port in enumerate(allow_ports):
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            issues.append(f"network.allow_ports.{index}: expected an integer between 1 and 65535")

    strict_ip_egress = _bool(network, "strict_ip_egress", False, "network", issues)
    egress_mode = network.get("egress_mode", "proxy-only" if strict_ip_egress else "dns-allowlist")
    if egress_mode not in EGRESS_MODES:
        issues.append(f"network.egress_mode: expected one of {', '.join(EGRESS_MODES)}")
    direct_ip_policy = network.get("direct_ip_policy", "fail" if strict_ip_egress else "warn")
    if direct_ip_policy not in DIRECT_IP_POLICIES:
        issues.append(f"network.direct_ip_policy: expected one of {', '.join(DIRECT_IP_POLICIES)}")

    if issues:
        raise ProfileError(f"Profile validation failed for {source}: {'; '.join(issues)}")

    return PolicyProfile(
        name=profile_name,
        exec_approvals=str(exec_mode),
        public_listen=public_listen,
        allow_unconfigured=allow_unconfigured,
        webui_enabled=webui_enabled,
        egress_default=str(egress_default),
        allowlist=tuple(allowlist),
        allow_ports=tuple(allow_ports),
        egress_mode=str(egress_mode),
        direct_ip_policy=str(direct_ip_policy),
    )


def _section(
    parent: dict[str, Any],
    key: str,
    issues: list[str],
    prefix: str = "",
    required: bool = False,
) -> dict[str, Any]:
    path = f"{prefix}.{key}" if prefix else key
    value = parent.get(key)
    if value is None:
        if required:
            issues.append(f"{path}: required")
        return {}
    if not isinstance(value, dict):
        issues.append(f"{path}: expected a mapping")
        return {}
    return value


def _bool(
    section: dict[str, Any],
    key: str,
    default: bool,
    prefix: str,
    issues: list[str],
) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        issues.append(f"{prefix}.{key}: expected a boolean")
        return default
    return value
