"""Tests for strategy configuration loading."""

import os
from pathlib import Path

import pytest

from opskins_auth.config import (
    DEFAULT_SCOPES,
    StrategyConfig,
    config_from_mapping,
    find_env_file,
    load_config,
)
from opskins_auth.errors import ConfigurationError

OPSKINS_VARS = [
    "OPSKINS_SITE_NAME",
    "OPSKINS_RETURN_URL",
    "OPSKINS_API_KEY",
    "OPSKINS_SCOPES",
    "OPSKINS_MOBILE",
    "OPSKINS_PERMANENT",
    "OPSKINS_HTTP_TIMEOUT",
    "OPSKINS_READY_TIMEOUT",
]

REQUIRED = {
    "OPSKINS_SITE_NAME": "acme",
    "OPSKINS_RETURN_URL": "https://acme.test/auth/callback",
    "OPSKINS_API_KEY": "key123",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for var in OPSKINS_VARS:
        monkeypatch.delenv(var, raising=False)
    yield
    # load_dotenv writes straight to os.environ
    for var in OPSKINS_VARS:
        os.environ.pop(var, None)


class TestStrategyConfig:
    """Tests for StrategyConfig."""

    def test_defaults(self) -> None:
        config = StrategyConfig(name="acme", return_url="https://acme.test/cb", api_key="k")
        assert config.scopes == "identity"
        assert not config.mobile
        assert not config.permanent
        assert config.authorize_params() == {}

    def test_empty_scopes_fall_back_to_default(self) -> None:
        config = StrategyConfig(name="acme", return_url="https://acme.test/cb", api_key="k", scopes="")
        assert config.scopes == DEFAULT_SCOPES

    def test_callback_path(self) -> None:
        config = StrategyConfig(
            name="acme", return_url="https://acme.test/auth/callback?x=1", api_key="k"
        )
        assert config.callback_path == "/auth/callback"

    @pytest.mark.parametrize("return_url", ["https://acme.test", "https://acme.test?x=1"])
    def test_callback_path_defaults_to_root(self, return_url: str) -> None:
        config = StrategyConfig(name="acme", return_url=return_url, api_key="k")
        assert config.callback_path == "/"

    def test_authorize_params(self) -> None:
        config = StrategyConfig(
            name="acme", return_url="https://acme.test/cb", api_key="k", mobile=True, permanent=True
        )
        assert config.authorize_params() == {"mobile": "1", "duration": "permanent"}

    def test_repr_hides_api_key(self) -> None:
        config = StrategyConfig(name="acme", return_url="https://acme.test/cb", api_key="key123")
        assert "key123" not in repr(config)

    def test_is_immutable(self) -> None:
        config = StrategyConfig(name="acme", return_url="https://acme.test/cb", api_key="k")
        with pytest.raises(AttributeError):
            config.name = "other"  # type: ignore[misc]


class TestConfigFromMapping:
    """Tests for config_from_mapping."""

    def test_required_only(self) -> None:
        config = config_from_mapping(REQUIRED)
        assert config.name == "acme"
        assert config.return_url == "https://acme.test/auth/callback"
        assert config.api_key == "key123"
        assert config.scopes == DEFAULT_SCOPES

    def test_missing_required_lists_variables(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping({"OPSKINS_SITE_NAME": "acme"})

        message = str(exc_info.value)
        assert "OPSKINS_RETURN_URL" in message
        assert "OPSKINS_API_KEY" in message
        assert "OPSKINS_SITE_NAME" not in message

    @pytest.mark.parametrize("value,expected", [
        ("1", True),
        ("true", True),
        ("YES", True),
        ("on", True),
        ("0", False),
        ("false", False),
        ("", False),
    ])
    def test_boolean_parsing(self, value: str, expected: bool) -> None:
        config = config_from_mapping({**REQUIRED, "OPSKINS_MOBILE": value, "OPSKINS_PERMANENT": value})
        assert config.mobile is expected
        assert config.permanent is expected

    def test_timeouts(self) -> None:
        config = config_from_mapping({
            **REQUIRED,
            "OPSKINS_HTTP_TIMEOUT": "5",
            "OPSKINS_READY_TIMEOUT": "2.5",
        })
        assert config.http_timeout == 5.0
        assert config.ready_timeout == 2.5

    def test_invalid_timeout(self) -> None:
        with pytest.raises(ConfigurationError):
            config_from_mapping({**REQUIRED, "OPSKINS_HTTP_TIMEOUT": "soon"})


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "OPSKINS_SITE_NAME=acme\n"
            "OPSKINS_RETURN_URL=https://acme.test/callback\n"
            "OPSKINS_API_KEY=from_file\n"
            "OPSKINS_PERMANENT=1\n"
        )

        config = load_config(env_file)

        assert config.api_key == "from_file"
        assert config.permanent

    def test_environment_wins_over_env_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "OPSKINS_SITE_NAME=acme\n"
            "OPSKINS_RETURN_URL=https://acme.test/callback\n"
            "OPSKINS_API_KEY=from_file\n"
        )
        monkeypatch.setenv("OPSKINS_API_KEY", "from_env")

        assert load_config(env_file).api_key == "from_env"

    def test_missing_config_raises(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError):
            load_config()


class TestFindEnvFile:
    """Tests for find_env_file."""

    def test_explicit_path(self, tmp_path: Path) -> None:
        env_file = tmp_path / "custom.env"
        env_file.write_text("")
        assert find_env_file(env_file) == env_file

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        assert find_env_file(tmp_path / "missing.env") is None

    def test_current_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("")
        assert find_env_file() == Path(".env")
