"""
Unit tests for Config environment parsing: defaults, bounds, choices and
the production guard.
"""

import pytest

from src.core.config.config import DEFAULT_DATABASE_URL, Config


@pytest.fixture
def env(monkeypatch):
    """Patched environment; Config is reloaded from the real one afterwards."""
    with monkeypatch.context() as patch:
        yield patch
    Config.reload()


@pytest.mark.unit
class TestLoad:
    def test_values_are_parsed(self, env):
        env.setenv("HISTORY_PAGE_SIZE", "25")
        env.setenv("TREND_EPSILON", "0.5")
        env.setenv("LOG_JSON", "yes")
        env.setenv("LOCK_BACKEND", "Redis")

        Config.reload()

        assert Config.HISTORY_PAGE_SIZE == 25
        assert Config.TREND_EPSILON == 0.5
        assert Config.LOG_JSON is True
        assert Config.LOCK_BACKEND == "redis"
        assert Config.rejected == {}

    @pytest.mark.parametrize(
        "key, raw, default",
        [
            ("HISTORY_PAGE_SIZE", "0", 50),
            ("HISTORY_PAGE_SIZE", "lots", 50),
            ("TOP_DISHES_MAX_LIMIT", "5000", 100),
            ("TREND_EPSILON", "-1", 0.01),
            ("DATABASE_ECHO", "maybe", False),
            ("AGGREGATION_MODE", "eventually", "inline"),
        ],
    )
    def test_invalid_values_fall_back_to_default(self, env, key, raw, default):
        env.setenv(key, raw)

        Config.reload()

        assert getattr(Config, key) == default
        assert key in Config.rejected

    def test_unset_log_json_follows_environment(self, env):
        env.delenv("LOG_JSON", raising=False)

        Config.reload()

        assert Config.LOG_JSON is None

    def test_scopes_are_deduplicated_in_order(self, env):
        env.setenv("RANKING_SCOPES", " dinner, all,,dinner ,dessert")

        Config.reload()

        assert Config.RANKING_SCOPES == ["dinner", "all", "dessert"]

    def test_blank_scopes_keep_default(self, env):
        env.setenv("RANKING_SCOPES", " , ")

        Config.reload()

        assert Config.RANKING_SCOPES == ["all"]
        assert "RANKING_SCOPES" in Config.rejected


@pytest.mark.unit
class TestValidate:
    def test_unknown_log_level_becomes_info(self, env):
        env.setenv("LOG_LEVEL", "chatty")

        Config.reload()

        assert Config.LOG_LEVEL == "INFO"

    def test_production_requires_database_url(self, env):
        env.setenv("ENVIRONMENT", "production")
        env.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ValueError, match="DATABASE_URL"):
            Config.reload()

    def test_production_refuses_rejected_settings(self, env):
        env.setenv("ENVIRONMENT", "production")
        env.setenv("DATABASE_URL", "postgresql+asyncpg://db.internal/onebest")
        env.setenv("LOCK_TTL_SECONDS", "0")

        with pytest.raises(ValueError, match="LOCK_TTL_SECONDS"):
            Config.reload()

    def test_summary_hides_secrets(self, env):
        env.setenv("REDIS_PASSWORD", "hunter2")
        env.setenv("DATABASE_URL", DEFAULT_DATABASE_URL)

        Config.reload()
        summary = Config.get_config_summary()

        assert "hunter2" not in str(summary)
        assert summary["database_url_set"] is False
