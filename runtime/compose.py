"""Compose declaration, env file and compose command helpers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Sequence, TypeVar

import yaml

from config.controller import VerifierSettings
from core.process import CommandResult, CommandRunner, run_command


T = TypeVar("T")


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Either a value or an error string describing why there is none."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def found(cls, value: T) -> "Lookup[T]":
        return cls(value=value)

    @classmethod
    def missing(cls, error: str) -> "Lookup[T]":
        return cls(error=error)


@dataclass(frozen=True)
class StackLocation:
    """Resolved artifact and report paths for one profile."""

    profile_name: str
    out_dir: Path
    compose_path: Path
    env_path: Path
    report_path: Path

    @classmethod
    def for_out_dir(
        cls,
        profile_name: str,
        out_dir: Path,
        settings: VerifierSettings,
        report_path: Path | None = None,
    ) -> "StackLocation":
        return cls(
            profile_name=profile_name,
            out_dir=out_dir,
            compose_path=out_dir / settings.compose_file_name,
            env_path=out_dir / settings.env_file_name,
            report_path=report_path
            if report_path is not None
            else out_dir / settings.security_report_name,
        )


def parse_env_source(source: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines, skipping comments and stripping quotes."""

    env: dict[str, str] = {}
    for raw_line in source.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        env[key] = value
    return env


def read_env_file(env_path: Path) -> Lookup[dict[str, str]]:
    if not env_path.exists():
        return Lookup.missing(f".env file not found at {env_path}")
    try:
        return Lookup.found(parse_env_source(env_path.read_text(encoding="utf-8")))
    except OSError as exc:
        return Lookup.missing(f"Unable to read {env_path}: {exc}")


def read_compose_source(compose_path: Path) -> Lookup[str]:
    if not compose_path.exists():
        return Lookup.missing(f"Compose file not found at {compose_path}")
    try:
        return Lookup.found(compose_path.read_text(encoding="utf-8"))
    except OSError as exc:
        return Lookup.missing(f"Unable to read {compose_path}: {exc}")


def parse_compose_source(source: str) -> Lookup[dict[str, Any]]:
    try:
        document = yaml.safe_load(source)
    except yaml.YAMLError as exc:
        return Lookup.missing(f"Invalid compose YAML: {' '.join(str(exc).split())}")
    if document is None:
        document = {}
    if not isinstance(document, dict):
        return Lookup.missing("Compose document must be a mapping")
    return Lookup.found(document)


def compose_services(document: dict[str, Any]) -> dict[str, Any]:
    services = document.get("services")
    return services if isinstance(services, dict) else {}


def compose_service(document: dict[str, Any], name: str) -> dict[str, Any] | None:
    service = compose_services(document).get(name)
    if service is None:
        return None
    return service if isinstance(service, dict) else {}


def managed_service_names(document: dict[str, Any], prefix: str) -> list[str]:
    """Return services named ``prefix`` or ``prefix-*`` in declaration order."""

    return [
        name
        for name in compose_services(document)
        if name == prefix or name.startswith(f"{prefix}-")
    ]


class ComposeStack:
    """Runs docker and docker compose commands against one stack location."""

    def __init__(
        self,
        location: StackLocation,
        settings: VerifierSettings,
        runner: CommandRunner = run_command,
    ) -> None:
        self.location = location
        self.settings = settings
        self._runner = runner

    def docker(self, args: Sequence[str], timeout_s: float | None = None) -> CommandResult:
        timeout = timeout_s if timeout_s is not None else self.settings.command_timeout_s
        return self._runner("docker", list(args), timeout_s=timeout)

    def compose(self, args: Sequence[str], timeout_s: float | None = None) -> CommandResult:
        base = [
            "compose",
            "-f",
            str(self.location.compose_path),
            "--env-file",
            str(self.location.env_path),
        ]
        return self.docker([*base, *args], timeout_s=timeout_s)

    def exec(self, service: str, command: Sequence[str], timeout_s: float | None = None) -> CommandResult:
        return self.compose(["exec", "-T", service, *command], timeout_s=timeout_s)

    def up(self) -> CommandResult:
        return self.compose(["up", "-d"])

    def config(self) -> CommandResult:
        return self.compose(["config"])

    def logs(self, service: str, tail: int) -> CommandResult:
        return self.compose(["logs", "--no-color", "--tail", str(tail), service])

    def run_host(self, binary: str, args: Sequence[str]) -> CommandResult:
        return self._runner(binary, list(args), timeout_s=self.settings.command_timeout_s)
