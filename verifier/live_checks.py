"""Checks that probe the running stack or the host."""

from __future__ import annotations

from typing import Any, Sequence

from config.controller import VerifierSettings
from core.process import short_error
from diagnostics.models import CheckResult, CheckStatus, failed, passed, warned
from runtime import inspectors
from runtime.compose import ComposeStack, compose_service, managed_service_names
from verifier.context import (
    DIRECT_IP,
    DNS_FORCED,
    DOCKER_SOCKET,
    EGRESS_ALLOWED,
    EGRESS_BLOCKED,
    FIREWALL_ENABLED,
    NON_ROOT,
    TMPFS_RUNTIME,
)


DOCKER_SOCKET_PATH = "/var/run/docker.sock"

DIRECT_IP_WARN_TEXT = (
    "DNS allowlist blocks domains, but direct-to-IP HTTPS may still work. For stronger "
    "enforcement, tighten outbound 443 to an IP allowlist or force all egress through a "
    "proxy/egress gateway."
)
DIRECT_IP_HARDENING_TEXT = (
    "To actually block direct-to-IP, enable hardened egress mode (proxy-only egress)."
)


def pick_blocked_domain(allowlist: Sequence[str], candidates: Sequence[str]) -> str:
    """Return the first candidate not on the allowlist, compared case-insensitively."""

    allowed = {domain.lower() for domain in allowlist}
    for candidate in candidates:
        if candidate.lower() not in allowed:
            return candidate
    return candidates[0]


def _probe_timeout(settings: VerifierSettings) -> float:
    # curl enforces --max-time itself; the process timeout only catches hangs
    return float(settings.probe_timeout_s) + 5.0


def _curl_args(settings: VerifierSettings, url: str, insecure: bool = False) -> list[str]:
    args = ["curl"]
    if insecure:
        args.append("-k")
    return [*args, "-I", "--max-time", str(settings.probe_timeout_s), url]


def check_tmpfs_runtime(stack: ComposeStack, service: str, settings: VerifierSettings) -> CheckResult:
    """The applied host config is authoritative; the declaration alone is not enough."""

    name = TMPFS_RUNTIME
    container = inspectors.container_id(stack, service)
    if not container.ok:
        return failed(name, container.error or f"{service} container id not found.")

    tmpfs = inspectors.host_tmpfs(stack, container.value)
    if not tmpfs.ok:
        return failed(name, tmpfs.error or "HostConfig.Tmpfs unavailable")

    required = settings.runtime_tmpfs_paths
    missing = [path for path in required if path not in tmpfs.value]
    if missing:
        return failed(name, f"HostConfig.Tmpfs missing required runtime paths: {', '.join(missing)}")
    return passed(name, f"{', '.join(required)} present in HostConfig.Tmpfs")


def check_non_root(stack: ComposeStack, service: str) -> CheckResult:
    name = NON_ROOT
    result = stack.exec(service, ["sh", "-lc", "id -u; id -g"])
    if not result.ok:
        return failed(name, f"{service}: {short_error(result)}")

    lines = [line.strip() for line in result.stdout.strip().splitlines()]
    uid = lines[0] if lines else ""
    gid = lines[1] if len(lines) > 1 else ""
    if not uid.isdigit() or not gid.isdigit():
        return failed(name, f"Unable to parse runtime uid/gid from '{result.stdout.strip()}'")
    if uid == "0":
        return failed(name, f"uid={uid} gid={gid} (root is not allowed)")
    return passed(name, f"uid={uid} gid={gid} (non-root)")


def _socket_mounts(document: dict[str, Any], prefix: str) -> list[str]:
    mounts: list[str] = []
    for service_name in managed_service_names(document, prefix):
        service = compose_service(document, service_name) or {}
        for volume in service.get("volumes") or []:
            if isinstance(volume, dict):
                source = str(volume.get("source") or "")
            else:
                source = str(volume)
            if DOCKER_SOCKET_PATH in source:
                mounts.append(f"{service_name}: {source}")
    return mounts


def check_docker_socket(
    stack: ComposeStack,
    document: dict[str, Any],
    service: str,
    settings: VerifierSettings,
    skip_reason: str | None = None,
) -> CheckResult:
    """Fail on a declared socket mount, then confirm the socket is absent at runtime.

    With ``skip_reason`` set only the declaration half runs and the runtime
    half is reported as a skip.
    """

    name = DOCKER_SOCKET
    mounts = _socket_mounts(document, settings.managed_service_prefix)
    if mounts:
        return failed(name, f"Compose mounts docker socket: {', '.join(mounts)}")

    if skip_reason is not None:
        return warned(
            name,
            f"SKIP: {skip_reason}. Compose check passed (no docker socket mount).",
        )

    result = stack.exec(service, ["sh", "-lc", f"test ! -S {DOCKER_SOCKET_PATH}"])
    if not result.ok:
        return failed(name, f"Socket exists in container or check failed: {short_error(result)}")
    return passed(name, "No docker socket mount detected in compose or runtime.")


def check_dns_forced(
    stack: ComposeStack,
    document: dict[str, Any],
    service: str,
    settings: VerifierSettings,
) -> CheckResult:
    name = DNS_FORCED
    resolver = settings.dns_resolver_ip
    missing_on: list[str] = []
    for service_name in managed_service_names(document, settings.managed_service_prefix):
        declared = (compose_service(document, service_name) or {}).get("dns") or []
        if isinstance(declared, str):
            declared = [declared]
        if resolver not in [str(entry) for entry in declared]:
            missing_on.append(service_name)
    if missing_on:
        return failed(name, f"Compose DNS missing {resolver} on: {', '.join(missing_on)}")

    container = inspectors.container_id(stack, service)
    if not container.ok:
        return failed(name, container.error or f"{service} container id not found.")

    runtime_dns = inspectors.host_dns(stack, container.value)
    if not runtime_dns.ok:
        return failed(name, runtime_dns.error or "HostConfig.Dns unavailable")

    status = CheckStatus.PASS if resolver in runtime_dns.value else CheckStatus.FAIL
    return CheckResult(name=name, status=status, details=f"runtime dns={runtime_dns.value}")


def check_egress_blocked(
    stack: ComposeStack,
    service: str,
    allowlist: Sequence[str],
    settings: VerifierSettings,
) -> CheckResult:
    name = EGRESS_BLOCKED
    domain = pick_blocked_domain(allowlist, settings.blocked_domain_candidates)
    result = stack.exec(
        service,
        _curl_args(settings, f"https://{domain}"),
        timeout_s=_probe_timeout(settings),
    )
    if not result.ok:
        return passed(name, f"curl https://{domain} blocked as expected ({short_error(result)})")
    return failed(name, f"curl https://{domain} unexpectedly succeeded")


def check_egress_allowed(
    stack: ComposeStack,
    service: str,
    allowlist: Sequence[str],
    settings: VerifierSettings,
) -> CheckResult:
    name = EGRESS_ALLOWED
    if not allowlist:
        return failed(name, "No allowlisted domains in profile.")

    domain = allowlist[0]
    result = stack.exec(
        service,
        _curl_args(settings, f"https://{domain}"),
        timeout_s=_probe_timeout(settings),
    )
    if result.ok:
        return passed(name, f"curl https://{domain} succeeded")
    return failed(name, f"curl https://{domain} failed ({short_error(result)})")


def check_direct_ip(
    stack: ComposeStack,
    service: str,
    direct_ip_policy: str,
    settings: VerifierSettings,
) -> CheckResult:
    """Probe a literal IP over HTTPS, in-container or from a throwaway probe.

    A reachable target is WARN under the ``warn`` policy and FAIL under
    ``fail``; a blocked target always passes.
    """

    name = DIRECT_IP
    target = settings.direct_ip_target
    reachable_status = CheckStatus.FAIL if direct_ip_policy == "fail" else CheckStatus.WARN
    guidance = f"{DIRECT_IP_WARN_TEXT} {DIRECT_IP_HARDENING_TEXT}"

    has_curl = stack.exec(service, ["sh", "-lc", "command -v curl >/dev/null 2>&1"])
    if has_curl.ok:
        result = stack.exec(
            service,
            _curl_args(settings, target, insecure=True),
            timeout_s=_probe_timeout(settings),
        )
        if result.ok:
            return CheckResult(
                name=name,
                status=reachable_status,
                details=f"{guidance} Policy={direct_ip_policy}. Method={service} curl to {target} succeeded.",
            )
        return passed(name, f"{service} curl to {target} failed ({short_error(result)})")

    container = inspectors.container_id(stack, service)
    if not container.ok:
        return failed(
            name,
            f"Unable to determine {service} container for fallback: {container.error or 'unknown error'}",
        )

    network = inspectors.container_network(stack, container.value)
    if not network.ok:
        return failed(
            name,
            f"Unable to determine stack network for fallback: {network.error or 'unknown error'}",
        )

    probe_args = _curl_args(settings, target, insecure=True)[1:]
    result = stack.docker(
        ["run", "--rm", "--network", network.value, settings.fallback_probe_image, *probe_args],
        timeout_s=settings.command_timeout_s,
    )
    method = f"fallback {settings.fallback_probe_image} on network '{network.value}'"
    if result.ok:
        return CheckResult(
            name=name,
            status=reachable_status,
            details=f"{guidance} Policy={direct_ip_policy}. Method={method} to {target} succeeded.",
        )
    return passed(name, f"{method} to {target} failed ({short_error(result)})")


def check_firewall_enabled(stack: ComposeStack, settings: VerifierSettings) -> CheckResult:
    name = FIREWALL_ENABLED
    result = stack.run_host("systemctl", ["is-enabled", settings.firewall_unit_name])
    if not result.ok:
        return failed(name, short_error(result))

    state = result.stdout.strip()
    status = CheckStatus.PASS if state == "enabled" else CheckStatus.FAIL
    return CheckResult(name=name, status=status, details=f"systemctl is-enabled returned '{state}'")
