from __future__ import annotations

import asyncio

import pytest

from leekgarden import cli
from leekgarden.cli import build_parser, main
from leekgarden.config import FightMode, GardenConfig, RunOptions
from leekgarden.errors import ConfigError
from leekgarden.register import register_battle_royale

ENV_VARS = [
    "LEEKWARS_LOGIN",
    "LEEKWARS_PASSWORD",
    "LEEKWARS_API_URL",
    "LEEKWARS_WS_URL",
    "LEEKGARDEN_DATABASE",
    "LEEKGARDEN_BOSS",
    "LEEKGARDEN_BATTLE_ROYALE",
    "LEEKGARDEN_COMPOSITION",
    "LEEKGARDEN_TEAM",
]


@pytest.fixture()
def clean_env(monkeypatch):
    for name in ENV_VARS:
        # set first so teardown also removes values loaded from .env files
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


def test_config_from_env(clean_env, tmp_path) -> None:
    clean_env.setenv("LEEKWARS_LOGIN", "farmer")
    clean_env.setenv("LEEKWARS_PASSWORD", "hunter2")
    clean_env.setenv("LEEKWARS_API_URL", "https://example.test/api/")
    clean_env.setenv("LEEKGARDEN_COMPOSITION", "26078")

    config = GardenConfig.from_env(str(tmp_path / "missing.env"))
    config.validate()

    assert config.login == "farmer"
    assert config.api_url == "https://example.test/api"
    assert config.composition_id == 26078
    assert config.team_id is None
    assert config.battle_royale_id == 89111


def test_config_reads_dotenv_file(clean_env, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("LEEKWARS_LOGIN=from-file\nLEEKWARS_PASSWORD=secret\nLEEKGARDEN_TEAM=8876\n")

    config = GardenConfig.from_env(str(env_file))

    assert config.login == "from-file"
    assert config.team_id == 8876


def test_non_integer_setting_is_rejected(clean_env, tmp_path) -> None:
    clean_env.setenv("LEEKGARDEN_TEAM", "many")
    with pytest.raises(ConfigError):
        GardenConfig.from_env(str(tmp_path / "missing.env"))


def test_missing_credentials_fail_validation() -> None:
    with pytest.raises(ConfigError):
        GardenConfig(login="", password="").validate()


@pytest.mark.parametrize(
    "options",
    [RunOptions(leek=0), RunOptions(fights=-1), RunOptions(type="ffa")],
)
def test_invalid_run_options(options: RunOptions) -> None:
    with pytest.raises(ConfigError):
        options.validate()


def test_team_options_need_ids() -> None:
    config = GardenConfig(login="x", password="y", composition_id=1, team_id=2)
    RunOptions(type=FightMode.TEAM).validate(config)
    with pytest.raises(ConfigError):
        RunOptions(type=FightMode.TEAM).validate(GardenConfig(login="x", password="y"))


def test_fight_command_arguments() -> None:
    args = build_parser().parse_args(["fight", "--leek", "2", "--fights", "0", "--type", "farmer", "--max-elo"])
    assert args.leek == 2
    assert args.fights == 0
    assert args.type is FightMode.FARMER
    assert args.max_elo is True
    assert args.dry_run is False


def test_main_exits_with_config_error_status(clean_env, tmp_path) -> None:
    assert main(["--env-file", str(tmp_path / "missing.env"), "fight"]) == 2


def test_register_uses_first_leek(garden, make_session) -> None:
    async def scenario():
        async with make_session() as session:
            return await register_battle_royale(session)

    assert asyncio.run(scenario()) is True


def test_cli_logs_under_its_module_name() -> None:
    assert cli.logger.name == "leekgarden.cli"
