"""Shared fixtures: a scripted command runner and an on-disk stack."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

import pytest

from config.controller import VerifierSettings
from core.process import CommandResult


TOKEN = "3f9c2b7e8a1d4c6f0e5b9a2d7c4e1f8a6b3d0c9e"

COMPOSE_TEMPLATE = """\
services:
  openclaw-gateway:
    image: ghcr.io/openclaw/openclaw:${OPENCLAW_TAG}
    user: node:node
    environment:
      OPENCLAW_GATEWAY_TOKEN: ${OPENCLAW_GATEWAY_TOKEN}
    ports:
      - "__BIND__:${OPENCLAW_GATEWAY_PORT}:${OPENCLAW_GATEWAY_CONTAINER_PORT}"
      - "__BIND__:${OPENCLAW_BRIDGE_HOST_PORT}:${OPENCLAW_BRIDGE_CONTAINER_PORT}"
    tmpfs:
      - /home/node/.openclaw/canvas:rw,noexec,nosuid,size=64m,mode=1777
      - /home/node/.openclaw/cron:rw,noexec,nosuid,size=16m,mode=1777
    volumes:
      - ./state:/home/node/.openclaw
    dns:
      - 172.29.0.53
  openclaw-cli:
    image: ghcr.io/openclaw/openclaw:${OPENCLAW_TAG}
    environment:
      OPENCLAW_GATEWAY_URL: http://openclaw-gateway:${OPENCLAW_GATEWAY_CONTAINER_PORT}
      OPENCLAW_GATEWAY_TOKEN: ${OPENCLAW_GATEWAY_TOKEN}
    dns:
      - 172.29.0.53
  dns_allowlist:
    image: coredns/coredns:1.11.1
"""

HEALTHY_TMPFS = {
    "/home/node/.openclaw/canvas": "rw,noexec,nosuid,size=64m,mode=1777",
    "/home/node/.openclaw/cron": "rw,noexec,nosuid,size=16m,mode=1777",
}

PERMISSION_LOGS = (
    "openclaw-gateway-1  | [gateway] starting\n"
    "openclaw-gateway-1  | Error: EACCES: permission denied, mkdir '/home/node/.openclaw/canvas'"
)


class FakeRunner:
    """Answers commands by substring; the most recently added rule wins."""

    def __init__(self) -> None:
        self.rules: list[tuple[str, CommandResult]] = []
        self.calls: list[str] = []

    def on(
        self,
        needle: str,
        exit_code: int | None = 0,
        stdout: str = "",
        stderr: str = "",
        error: str | None = None,
    ) -> "FakeRunner":
        result = CommandResult(
            command_line=needle,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            error=error,
        )
        self.rules.append((needle, result))
        return self

    def __call__(
        self,
        binary: str,
        args: Sequence[str],
        timeout_s: float | None = None,
    ) -> CommandResult:
        line = " ".join([binary, *args])
        self.calls.append(line)
        for needle, result in reversed(self.rules):
            if needle in line:
                return CommandResult(
                    command_line=line,
                    exit_code=result.exit_code,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    error=result.error,
                )
        return CommandResult(command_line=line, exit_code=0)

    def called(self, needle: str) -> bool:
        return any(needle in call for call in self.calls)


def healthy_runner() -> FakeRunner:
    runner = FakeRunner()
    runner.on("git rev-parse", stdout="a1b2c3d\n")
    runner.on("up -d", stdout="")
    runner.on(".env config", stdout="services: {}\n")
    runner.on("ps -q", stdout="c0ffee123456\n")
    runner.on("{{.State.Status}}", stdout="running\n")
    runner.on("logs --no-color", stdout="openclaw-gateway-1  | [gateway] listening\n")
    runner.on(".HostConfig.Tmpfs", stdout=json.dumps(HEALTHY_TMPFS))
    runner.on(".HostConfig.Dns", stdout='["172.29.0.53"]\n')
    runner.on(".NetworkSettings.Networks", stdout='{"openclaw_internal": {}}\n')
    runner.on("id -u; id -g", stdout="1000\n1000\n")
    runner.on("test ! -S /var/run/docker.sock")
    runner.on("command -v curl")
    runner.on("https://example.com", exit_code=28, stderr="curl: (28) Connection timed out")
    runner.on("https://example.org", stdout="HTTP/2 200\n")
    runner.on("https://1.1.1.1", stdout="HTTP/2 301\n")
    runner.on("systemctl is-enabled", stdout="enabled\n")
    return runner


def write_stack(
    root: Path,
    profile_name: str = "research-only",
    bind: str = "127.0.0.1",
    env_overrides: dict[str, str] | None = None,
    compose_text: str | None = None,
    profile_text: str | None = None,
) -> Path:
    """Write profile, compose and env files under ``root`` and return the out dir."""

    profiles_dir = root / "profiles"
    profiles_dir.mkdir(parents=True, exist_ok=True)
    (profiles_dir / f"{profile_name}.yaml").write_text(
        profile_text
        if profile_text is not None
        else (
            "openclaw:\n"
            "  approvals:\n"
            "    exec: require\n"
            "network:\n"
            "  allow:\n"
            "    - example.org\n"
        ),
        encoding="utf-8",
    )

    out_dir = root / "out" / profile_name
    out_dir.mkdir(parents=True, exist_ok=True)
    compose = compose_text if compose_text is not None else COMPOSE_TEMPLATE.replace("__BIND__", bind)
    (out_dir / "docker-compose.yml").write_text(compose, encoding="utf-8")

    env = {
        "OPENCLAW_TAG": "2026.2.13",
        "OPENCLAW_GATEWAY_TOKEN": TOKEN,
        "OPENCLAW_GATEWAY_PORT": "18789",
        "OPENCLAW_BRIDGE_HOST_PORT": "18790",
        "OPENCLAW_GATEWAY_CONTAINER_PORT": "18789",
        "OPENCLAW_BRIDGE_CONTAINER_PORT": "18790",
    }
    env.update(env_overrides or {})
    lines = ["# generated by ocs install"] + [f"{key}={value}" for key, value in env.items()]
    (out_dir / ".env").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return out_dir


@pytest.fixture
def settings() -> VerifierSettings:
    return VerifierSettings()


@pytest.fixture
def runner() -> FakeRunner:
    return healthy_runner()
