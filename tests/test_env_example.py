from __future__ import annotations

from pathlib import Path

from positionsteps.config import Settings

EXPECTED_KEYS = {
    "NETWORK",
    "SAVINGS_VAULT_ADDRESS",
    "RPC_URL",
    "RPC_TIMEOUT_SECONDS",
    "GAS_LIMIT_MULTIPLIER",
    "MAX_FEE_PERCENTAGE",
    "APPROVAL_TYPE",
    "PERMIT_DEADLINE_SECONDS",
    "FRONTEND_TAG",
    "LOG_LEVEL",
}

ENV_EXAMPLE = Path(__file__).resolve().parents[1] / ".env.example"


def _env_lines() -> list[str]:
    env_example = ENV_EXAMPLE.read_text(encoding="utf-8")
    return [
        line.strip()
        for line in env_example.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def test_env_example_is_multiline_and_key_value() -> None:
    lines = _env_lines()

    assert len(lines) > 1
    assert all("=" in line for line in lines)
    keys = {line.split("=", 1)[0] for line in lines}
    assert keys == EXPECTED_KEYS


def test_env_example_covers_every_setting() -> None:
    aliases = {field.alias for field in Settings.model_fields.values()}

    assert aliases == EXPECTED_KEYS


def test_env_example_values_load_into_settings(monkeypatch, tmp_path: Path) -> None:
    env_file = tmp_path / ".env.local"
    env_file.write_text(ENV_EXAMPLE.read_text(encoding="utf-8"), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    settings = Settings(_env_file=str(env_file))

    assert settings.network == "mainnet"
    assert settings.savings_vault_address is None
    assert settings.rpc_url is None
    assert settings.frontend_tag is None
    assert settings.permit_deadline_seconds == 1800
    assert settings.log_level == "INFO"
