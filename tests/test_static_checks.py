"""Tests for checks over the compose declaration and env file."""

from __future__ import annotations

from dataclasses import replace

import yaml

from config.controller import VerifierSettings
from conftest import COMPOSE_TEMPLATE, TOKEN
from diagnostics.models import CheckStatus
from runtime.compose import Lookup
from verifier.checks import (
    check_gateway_token,
    check_no_hardcoded_ports,
    check_port_exposure,
    check_selected_ports,
    check_tmpfs_overlay,
    check_token_externalized,
    parse_port_binding,
)


DEFAULT_PORTS = {
    "OPENCLAW_GATEWAY_PORT": "18789",
    "OPENCLAW_BRIDGE_HOST_PORT": "18790",
    "OPENCLAW_GATEWAY_CONTAINER_PORT": "18789",
    "OPENCLAW_BRIDGE_CONTAINER_PORT": "18790",
}


def _compose(bind: str = "127.0.0.1") -> str:
    return COMPOSE_TEMPLATE.replace("__BIND__", bind)


def _env(**overrides: str) -> Lookup[dict[str, str]]:
    values = {"OPENCLAW_GATEWAY_TOKEN": TOKEN, **DEFAULT_PORTS}
    values.update(overrides)
    return Lookup.found(values)


def test_placeholder_token_fails(settings) -> None:
    result = check_gateway_token(_env(OPENCLAW_GATEWAY_TOKEN="change-me"), settings)

    assert result.status is CheckStatus.FAIL
    assert "change-me" in result.details


def test_placeholder_fails_even_when_long_enough() -> None:
    placeholder = "x" * 40
    settings = VerifierSettings(secret_placeholder=placeholder)

    result = check_gateway_token(_env(OPENCLAW_GATEWAY_TOKEN=placeholder), settings)

    assert result.status is CheckStatus.FAIL


def test_short_and_missing_tokens_fail(settings) -> None:
    assert check_gateway_token(_env(OPENCLAW_GATEWAY_TOKEN="abc"), settings).status is CheckStatus.FAIL
    assert check_gateway_token(Lookup.found({}), settings).status is CheckStatus.FAIL
    missing_env = check_gateway_token(Lookup.missing(".env file not found at /x/.env"), settings)
    assert missing_env.details == ".env file not found at /x/.env"


def test_generated_token_passes(settings) -> None:
    result = check_gateway_token(_env(), settings)

    assert result.status is CheckStatus.PASS
    assert "length=40" in result.details


def test_token_literal_in_compose_fails(settings) -> None:
    source = _compose() + f"# leaked {TOKEN}\n"

    result = check_token_externalized(Lookup.found(source), _env(), settings)

    assert result.status is CheckStatus.FAIL
    assert "literal gateway token" in result.details


def test_token_externalized_custom_name(settings) -> None:
    result = check_token_externalized(
        Lookup.found(_compose()), _env(), settings, name="Secrets externalization"
    )

    assert result.name == "Secrets externalization"
    assert result.status is CheckStatus.PASS


def test_token_reference_required(settings) -> None:
    source = _compose().replace("${OPENCLAW_GATEWAY_TOKEN}", "from-vault")

    result = check_token_externalized(Lookup.found(source), _env(), settings)

    assert result.status is CheckStatus.FAIL


def test_default_ports_pass(settings) -> None:
    result = check_selected_ports(_env(), Lookup.found(_compose()), settings)

    assert result.status is CheckStatus.PASS


def test_adjusted_ports_warn(settings) -> None:
    env = _env(OPENCLAW_GATEWAY_PORT="18801", OPENCLAW_BRIDGE_HOST_PORT="18802")

    result = check_selected_ports(env, Lookup.found(_compose()), settings)

    assert result.status is CheckStatus.WARN
    assert "auto-adjusted" in result.details


def test_out_of_range_port_fails(settings) -> None:
    env = _env(OPENCLAW_BRIDGE_HOST_PORT="19999")

    result = check_selected_ports(env, Lookup.found(_compose()), settings)

    assert result.status is CheckStatus.FAIL
    assert "OPENCLAW_BRIDGE_HOST_PORT=19999" in result.details


def test_colliding_ports_fail(settings) -> None:
    env = _env(OPENCLAW_GATEWAY_PORT="18800", OPENCLAW_BRIDGE_HOST_PORT="18800")

    result = check_selected_ports(env, Lookup.found(_compose()), settings)

    assert result.status is CheckStatus.FAIL
    assert "distinct" in result.details


def test_non_integer_port_fails(settings) -> None:
    result = check_selected_ports(_env(OPENCLAW_GATEWAY_PORT="auto"), Lookup.found(_compose()), settings)

    assert result.status is CheckStatus.FAIL


def test_missing_port_interpolation_fails(settings) -> None:
    source = _compose().replace("${OPENCLAW_BRIDGE_HOST_PORT}", "18790")

    result = check_selected_ports(_env(), Lookup.found(source), settings)

    assert result.status is CheckStatus.FAIL
    assert "${OPENCLAW_BRIDGE_HOST_PORT}" in result.details


def test_hardcoded_literal_fails(settings) -> None:
    source = _compose() + "x-healthcheck: curl -f http://localhost:18789/health\n"

    result = check_no_hardcoded_ports(Lookup.found(source), settings)

    assert result.status is CheckStatus.FAIL
    assert "18789" in result.details


def test_hardcoded_gateway_url_fails(settings) -> None:
    source = _compose().replace(
        "http://openclaw-gateway:${OPENCLAW_GATEWAY_CONTAINER_PORT}", "http://openclaw-gateway"
    )

    result = check_no_hardcoded_ports(Lookup.found(source), settings)

    assert result.status is CheckStatus.FAIL


def test_interpolated_compose_has_no_literals(settings) -> None:
    assert check_no_hardcoded_ports(Lookup.found(_compose()), settings).status is CheckStatus.PASS


def test_loopback_exposure_passes(settings) -> None:
    document = yaml.safe_load(_compose())

    result = check_port_exposure(document, "openclaw-gateway", False, settings)

    assert result.status is CheckStatus.PASS


def test_public_binding_fails_without_public_listen(settings) -> None:
    document = yaml.safe_load(_compose("0.0.0.0"))

    result = check_port_exposure(document, "openclaw-gateway", False, settings)

    assert result.status is CheckStatus.FAIL
    assert "non-local" in result.details


def test_public_binding_warns_with_public_listen(settings) -> None:
    document = yaml.safe_load(_compose("0.0.0.0"))

    result = check_port_exposure(document, "openclaw-gateway", True, settings)

    assert result.status is CheckStatus.WARN


def test_exposure_requires_runtime_service(settings) -> None:
    result = check_port_exposure({}, None, False, settings)

    assert result.status is CheckStatus.FAIL
    assert "openclaw-gateway, openclaw" in result.details


def test_long_port_syntax() -> None:
    binding = parse_port_binding({"target": "${OPENCLAW_GATEWAY_CONTAINER_PORT}", "published": "18789"})

    assert binding is not None
    assert binding.is_public
    assert parse_port_binding("18789:18789").host_ip == "0.0.0.0"
    assert parse_port_binding("18789") is None


def test_tmpfs_overlay_missing_entry_fails(settings) -> None:
    document = yaml.safe_load(_compose())
    document["services"]["openclaw-gateway"]["tmpfs"] = [
        "/home/node/.openclaw/canvas:rw,noexec,nosuid,size=64m,mode=1777"
    ]

    result = check_tmpfs_overlay(document, settings)

    assert result.status is CheckStatus.FAIL
    assert "/home/node/.openclaw/cron" in result.details


def test_tmpfs_overlay_present_passes(settings) -> None:
    assert check_tmpfs_overlay(yaml.safe_load(_compose()), settings).status is CheckStatus.PASS


def test_tmpfs_overlay_paths_follow_settings(settings) -> None:
    custom = replace(settings, runtime_tmpfs={"/srv/scratch": "rw"})

    result = check_tmpfs_overlay(yaml.safe_load(_compose()), custom)

    assert result.status is CheckStatus.FAIL
    assert "/srv/scratch" in result.details
