"""Configuration controller for YAML-based verifier settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent


class SettingsError(Exception):
    """Raised when a settings file is missing, unreadable or malformed."""


@dataclass(frozen=True)
class ConfigPaths:
    """Filesystem paths for configuration files."""

    config_dir: Path
    config_file: Path
    override_file: Path


@dataclass(frozen=True)
class PortRole:
    """Host/container port variables and the allowed range for one role."""

    name: str
    host_env: str
    container_env: str
    default: int
    min_port: int
    max_port: int

    def in_range(self, port: int) -> bool:
        return self.min_port <= port <= self.max_port


@dataclass(frozen=True)
class VerifierSettings:
    """Constants consumed by the check battery.

    Built from ``default.yaml`` (optionally merged with ``override.yaml``) or
    constructed directly in tests.
    """

    dns_resolver_ip: str = "172.29.0.53"
    network_subnet: str = "172.29.0.0/24"
    firewall_unit_name: str = "openclaw-secure-firewall.service"
    runtime_service_candidates: tuple[str, ...] = ("openclaw-gateway", "openclaw")
    gateway_service: str = "openclaw-gateway"
    managed_service_prefix: str = "openclaw"
    runtime_tmpfs: dict[str, str] = field(
        default_factory=lambda: {
            "/home/node/.openclaw/canvas": "rw,noexec,nosuid,size=64m,mode=1777",
            "/home/node/.openclaw/cron": "rw,noexec,nosuid,size=16m,mode=1777",
        }
    )
    missing_config_marker: str = "missing config"
    secret_env_var: str = "OPENCLAW_GATEWAY_TOKEN"
    secret_placeholder: str = "change-me"
    secret_min_length: int = 32
    gateway_port: PortRole = PortRole(
        "gateway",
        "OPENCLAW_GATEWAY_PORT",
        "OPENCLAW_GATEWAY_CONTAINER_PORT",
        18789,
        18789,
        18889,
    )
    bridge_port: PortRole = PortRole(
        "bridge",
        "OPENCLAW_BRIDGE_HOST_PORT",
        "OPENCLAW_BRIDGE_CONTAINER_PORT",
        18790,
        18790,
        18890,
    )
    blocked_domain_candidates: tuple[str, ...] = ("example.com", "iana.org", "wikipedia.org")
    direct_ip_target: str = "https://1.1.1.1"
    fallback_probe_image: str = "curlimages/curl:8.12.1"
    probe_timeout_s: int = 10
    command_timeout_s: float = 120.0
    diagnosis_log_tail: int = 60
    doctor_log_tail: int = 120
    out_dir_name: str = "out"
    profiles_dir_name: str = "profiles"
    compose_file_name: str = "docker-compose.yml"
    env_file_name: str = ".env"
    security_report_name: str = "security-report.md"
    doctor_report_name: str = "doctor-report.md"

    @property
    def runtime_tmpfs_paths(self) -> list[str]:
        return list(self.runtime_tmpfs)

    @property
    def runtime_tmpfs_expected(self) -> list[str]:
        return [f"{path}:{options}" for path, options in self.runtime_tmpfs.items()]

    @property
    def port_roles(self) -> tuple[PortRole, PortRole]:
        return (self.gateway_port, self.bridge_port)


def load_settings(
    config_dir: Path | None = None,
    override_file: Path | None = None,
) -> VerifierSettings:
    """Load settings from ``default.yaml`` and an optional override file.

    An explicitly passed ``override_file`` must exist; the implicit
    ``override.yaml`` beside the defaults is optional.

    Raises:
        SettingsError: A file is missing, not YAML, or holds invalid values.
    """

    root = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR
    paths = ConfigPaths(
        config_dir=root,
        config_file=root / "default.yaml",
        override_file=override_file if override_file is not None else root / "override.yaml",
    )

    config = _read_yaml(paths.config_file)

    if override_file is not None and not paths.override_file.exists():
        raise SettingsError(f"Config override not found: {paths.override_file}")
    if paths.override_file.exists():
        override_config = _read_yaml(paths.override_file)
        if override_config:
            config = _deep_merge(config, override_config)

    return _settings_from_config(config)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as file:
            loaded = yaml.safe_load(file) or {}
    except yaml.YAMLError as exc:
        message = " ".join(str(exc).split())
        raise SettingsError(f"Invalid YAML in {path}: {message}") from exc
    except OSError as exc:
        raise SettingsError(f"Unable to read {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise SettingsError(f"Config file {path} must contain a mapping")
    return loaded


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge dictionaries, overriding base values with override values."""

    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _port_role(name: str, raw: dict[str, Any], fallback: PortRole) -> PortRole:
    try:
        role = PortRole(
            name=name,
            host_env=str(raw.get("host_env", fallback.host_env)),
            container_env=str(raw.get("container_env", fallback.container_env)),
            default=int(raw.get("default", fallback.default)),
            min_port=int(raw.get("min", fallback.min_port)),
            max_port=int(raw.get("max", fallback.max_port)),
        )
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"ports.{name}: port values must be integers ({exc})") from exc

    if not 1 <= role.min_port <= role.max_port <= 65535:
        raise SettingsError(
            f"ports.{name}: expected 1 <= min <= max <= 65535, got {role.min_port}-{role.max_port}"
        )
    if not role.in_range(role.default):
        raise SettingsError(
            f"ports.{name}: default {role.default} is outside {role.min_port}-{role.max_port}"
        )
    return role


def _settings_from_config(config: dict[str, Any]) -> VerifierSettings:
    defaults = VerifierSettings()
    network_cfg = dict(config.get("network") or {})
    firewall_cfg = dict(config.get("firewall") or {})
    services_cfg = dict(config.get("services") or {})
    runtime_cfg = dict(config.get("gateway_runtime") or {})
    secret_cfg = dict(config.get("secret") or {})
    ports_cfg = dict(config.get("ports") or {})
    probes_cfg = dict(config.get("probes") or {})
    logs_cfg = dict(config.get("logs") or {})
    paths_cfg = dict(config.get("paths") or {})

    tmpfs_cfg = runtime_cfg.get("tmpfs") or defaults.runtime_tmpfs
    return VerifierSettings(
        dns_resolver_ip=str(network_cfg.get("dns_resolver_ip", defaults.dns_resolver_ip)),
        network_subnet=str(network_cfg.get("subnet", defaults.network_subnet)),
        firewall_unit_name=str(firewall_cfg.get("unit_name", defaults.firewall_unit_name)),
        runtime_service_candidates=tuple(
            str(name)
            for name in services_cfg.get("runtime_candidates", defaults.runtime_service_candidates)
        ),
        gateway_service=str(services_cfg.get("gateway", defaults.gateway_service)),
        managed_service_prefix=str(
            services_cfg.get("managed_prefix", defaults.managed_service_prefix)
        ),
        runtime_tmpfs={str(path): str(options) for path, options in tmpfs_cfg.items()},
        missing_config_marker=str(
            runtime_cfg.get("missing_config_marker", defaults.missing_config_marker)
        ),
        secret_env_var=str(secret_cfg.get("env_var", defaults.secret_env_var)),
        secret_placeholder=str(secret_cfg.get("placeholder", defaults.secret_placeholder)),
        secret_min_length=int(secret_cfg.get("min_length", defaults.secret_min_length)),
        gateway_port=_port_role(
            "gateway", dict(ports_cfg.get("gateway") or {}), defaults.gateway_port
        ),
        bridge_port=_port_role("bridge", dict(ports_cfg.get("bridge") or {}), defaults.bridge_port),
        blocked_domain_candidates=tuple(
            str(domain)
            for domain in probes_cfg.get(
                "blocked_domain_candidates", defaults.blocked_domain_candidates
            )
        ),
        direct_ip_target=str(probes_cfg.get("direct_ip_target", defaults.direct_ip_target)),
        fallback_probe_image=str(probes_cfg.get("fallback_image", defaults.fallback_probe_image)),
        probe_timeout_s=int(probes_cfg.get("timeout_s", defaults.probe_timeout_s)),
        command_timeout_s=float(probes_cfg.get("command_timeout_s", defaults.command_timeout_s)),
        diagnosis_log_tail=int(logs_cfg.get("diagnosis_tail", defaults.diagnosis_log_tail)),
        doctor_log_tail=int(logs_cfg.get("doctor_tail", defaults.doctor_log_tail)),
        out_dir_name=str(paths_cfg.get("out_dir", defaults.out_dir_name)),
        profiles_dir_name=str(paths_cfg.get("profiles_dir", defaults.profiles_dir_name)),
        compose_file_name=str(paths_cfg.get("compose_file", defaults.compose_file_name)),
        env_file_name=str(paths_cfg.get("env_file", defaults.env_file_name)),
        security_report_name=str(
            paths_cfg.get("security_report", defaults.security_report_name)
        ),
        doctor_report_name=str(paths_cfg.get("doctor_report", defaults.doctor_report_name)),
    )
