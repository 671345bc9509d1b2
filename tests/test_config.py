"""Tests for configuration loading and account settings."""

from pathlib import Path

import pytest

from ferry.config import (
    AccountSettings,
    FerryConfig,
    LockMode,
    load_config,
    load_settings,
    write_config_template,
)
from ferry.errors import ConfigError
from ferry.models import Environment


@pytest.fixture
def ferry_dir(tmp_path: Path) -> Path:
    """Create temporary .ferry directory."""
    d = tmp_path / ".ferry"
    d.mkdir()
    return d


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove account variables from the environment."""
    for var in ("AWS_ACCOUNT_ID", "AWS_DEFAULT_REGION", "IMAGE_REPO_NAME", "FERRY_REGISTRY_HOST"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_returns_defaults(self, ferry_dir: Path) -> None:
        """No config.toml yields defaults."""
        config = load_config(ferry_dir)
        assert config.deploy.container_name == "app"
        assert config.deploy.timeout == 600
        assert config.registry.max_attempts == 3
        assert config.environments == {}

    def test_template_round_trip(self, ferry_dir: Path) -> None:
        """The written template loads back with a target per environment."""
        write_config_template(ferry_dir, "web")
        config = load_config(ferry_dir)
        assert config.project.name == "web"
        assert config.build.required_paths == ["etc/{environment}"]
        assert config.deploy.lock_mode == LockMode.FAIL
        for env in Environment:
            target = config.get_target(env)
            assert target.cluster == f"web-{env.value}"
            assert target.family == f"web-{env.value}"

    def test_invalid_toml(self, ferry_dir: Path) -> None:
        """Malformed TOML is a ConfigError."""
        (ferry_dir / "config.toml").write_text("[deploy\ntimeout = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(ferry_dir)

    def test_invalid_values(self, ferry_dir: Path) -> None:
        """Values failing validation are a ConfigError with details."""
        (ferry_dir / "config.toml").write_text("[registry]\nmax_attempts = 0\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(ferry_dir)
        assert exc_info.value.diagnostics["errors"]

    def test_unknown_environment_rejected(self, ferry_dir: Path) -> None:
        """Only the supported environments can be configured."""
        (ferry_dir / "config.toml").write_text(
            '[environments.qa]\ncluster = "c"\nservice = "s"\nfamily = "f"\n'
        )
        with pytest.raises(ConfigError):
            load_config(ferry_dir)


class TestFerryConfig:
    """Tests for FerryConfig helpers."""

    def test_missing_target(self) -> None:
        """Unconfigured environment raises ConfigError with a hint."""
        with pytest.raises(ConfigError, match="production") as exc_info:
            FerryConfig().get_target(Environment.PRODUCTION)
        assert "environments.production" in exc_info.value.diagnostics["hint"]

    def test_template_path(self, tmp_path: Path) -> None:
        """Templates live under <templates_dir>/<env>/definition.json."""
        path = FerryConfig().template_path(tmp_path, Environment.STAGING)
        assert path == tmp_path / "deploy" / "staging" / "definition.json"


class TestAccountSettings:
    """Tests for AccountSettings."""

    def test_reads_environment(self, clean_env: pytest.MonkeyPatch) -> None:
        """Identifiers come from the process environment."""
        clean_env.setenv("AWS_ACCOUNT_ID", "123456789012")
        clean_env.setenv("AWS_DEFAULT_REGION", "eu-west-1")
        clean_env.setenv("IMAGE_REPO_NAME", "web")
        settings = load_settings()
        settings.require_complete()
        assert settings.image_repo_name == "web"
        assert settings.registry_host == "123456789012.dkr.ecr.eu-west-1.amazonaws.com"

    def test_registry_host_override(self, clean_env: pytest.MonkeyPatch) -> None:
        """FERRY_REGISTRY_HOST replaces the derived host."""
        clean_env.setenv("FERRY_REGISTRY_HOST", "localhost:5000")
        clean_env.setenv("AWS_DEFAULT_REGION", "eu-west-1")
        clean_env.setenv("IMAGE_REPO_NAME", "web")
        settings = AccountSettings()
        settings.require_complete()
        assert settings.registry_host == "localhost:5000"

    def test_missing_variables_listed(self, clean_env: pytest.MonkeyPatch) -> None:
        """Every missing variable is reported at once."""
        with pytest.raises(ConfigError) as exc_info:
            AccountSettings().require_complete()
        assert exc_info.value.diagnostics["missing"] == [
            "IMAGE_REPO_NAME",
            "AWS_DEFAULT_REGION",
            "AWS_ACCOUNT_ID",
        ]
