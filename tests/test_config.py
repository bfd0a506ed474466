"""Tests for settings resolution."""

from core.config import Settings, get_cached_settings


class TestConnectionStringResolution:
    """The connection string may come from several environment variables."""

    def test_first_configured_name_wins(self, make_settings, monkeypatch):
        """MARKETPLACE_MONGODB_URI beats the generic names."""
        make_settings()  # clears the environment
        monkeypatch.setenv("DATABASE_URL", "mongodb://db-url/a")
        monkeypatch.setenv("MONGODB_URL", "mongodb://mongodb-url/b")
        monkeypatch.setenv("MARKETPLACE_MONGODB_URI", "mongodb://marketplace/c")

        settings = Settings(_env_file=None)

        assert settings.MONGODB_URI == "mongodb://marketplace/c"

    def test_falls_back_to_database_url(self, make_settings, monkeypatch):
        make_settings()
        monkeypatch.setenv("DATABASE_URL", "mongodb://db-url/a")

        assert Settings(_env_file=None).MONGODB_URI == "mongodb://db-url/a"

    def test_empty_values_are_ignored(self, make_settings, monkeypatch):
        make_settings()
        monkeypatch.setenv("MONGODB_URI", "")
        monkeypatch.setenv("MONGODB_CONNECTION_STRING", "mongodb://conn/x")

        assert Settings(_env_file=None).MONGODB_URI == "mongodb://conn/x"

    def test_missing_everywhere_is_none(self, make_settings):
        make_settings()
        assert Settings(_env_file=None).MONGODB_URI is None


class TestSettingsDefaults:
    """Defaults match the documented deployment."""

    def test_defaults(self, settings):
        assert settings.API_PREFIX == "/api/marketplace"
        assert settings.DEFAULT_DB_NAME == "mcp_marketplace"
        assert settings.SERVERS_COLLECTION == "servers"
        assert settings.PUBLIC_LISTING_FALLBACK is True

    def test_public_fallback_can_be_disabled(self, make_settings, monkeypatch):
        make_settings()
        monkeypatch.setenv("MARKETPLACE_PUBLIC_FALLBACK", "false")

        assert Settings(_env_file=None).PUBLIC_LISTING_FALLBACK is False

    def test_cached_settings_are_shared(self):
        assert get_cached_settings() is get_cached_settings()
