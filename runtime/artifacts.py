"""Deployment artifact collaborator contract.

Generating compose/env files is done by a separate installer. The verifier
only needs the resulting locations, so the default implementation here finds
artifacts that already exist and never writes anything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from config.controller import VerifierSettings
from config.profile import PolicyProfile
from runtime.compose import read_env_file


class ArtifactError(Exception):
    """Raised when artifacts cannot be generated or located."""


@dataclass(frozen=True)
class GeneratedArtifacts:
    out_dir: Path
    env_path: Path
    compose_path: Path
    selected_ports: dict[str, int] = field(default_factory=dict)
    secret_generated: bool = False
    ports_adjusted: bool = False


class ArtifactGenerator(Protocol):
    def generate(
        self,
        profile_name: str,
        profile: PolicyProfile,
        *,
        auto_generate_secret: bool,
        auto_adjust_ports: bool,
    ) -> GeneratedArtifacts: ...


class ExistingArtifacts:
    """Locate ``<base>/out/<profile>/`` artifacts written by the installer."""

    def __init__(self, settings: VerifierSettings, base_dir: Path | None = None) -> None:
        self._settings = settings
        self._base_dir = base_dir if base_dir is not None else Path.cwd()

    def out_dir(self, profile_name: str) -> Path:
        return (self._base_dir / self._settings.out_dir_name / profile_name).resolve()

    def generate(
        self,
        profile_name: str,
        profile: PolicyProfile,
        *,
        auto_generate_secret: bool,
        auto_adjust_ports: bool,
    ) -> GeneratedArtifacts:
        out_dir = self.out_dir(profile_name)
        if not out_dir.is_dir():
            raise ArtifactError(
                f"No artifacts for profile '{profile.name}' at {out_dir}; run the installer first."
            )

        env_path = out_dir / self._settings.env_file_name
        selected_ports: dict[str, int] = {}
        env = read_env_file(env_path)
        if env.ok:
            for role in self._settings.port_roles:
                value = env.value.get(role.host_env, "").strip()
                if value.isdigit():
                    selected_ports[role.name] = int(value)

        return GeneratedArtifacts(
            out_dir=out_dir,
            env_path=env_path,
            compose_path=out_dir / self._settings.compose_file_name,
            selected_ports=selected_ports,
        )
