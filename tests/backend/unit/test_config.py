import logging

from buzzquiz.backend.config import configure_logging, load_settings

ENV_NAMES = (
    "BUZZQUIZ_DATABASE_URL",
    "BUZZQUIZ_HOST",
    "BUZZQUIZ_PORT",
    "BUZZQUIZ_TTS_API_KEY",
    "GOOGLE_CLOUD_TTS_API_KEY",
    "BUZZQUIZ_CORS_ORIGINS",
    "BUZZQUIZ_LOG_LEVEL",
)


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    monkeypatch.setenv("BUZZQUIZ_DATABASE_URL", "postgresql://local")
    monkeypatch.setenv("BUZZQUIZ_HOST", "localhost")
    monkeypatch.setenv("BUZZQUIZ_PORT", "9000")
    monkeypatch.setenv("BUZZQUIZ_TTS_API_KEY", "key-1")
    monkeypatch.setenv("BUZZQUIZ_CORS_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("BUZZQUIZ_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.database_url == "postgresql://local"
    assert settings.host == "localhost"
    assert settings.port == 9000
    assert settings.tts_api_key == "key-1"
    assert settings.cors_origins == ("http://a.test", "http://b.test")
    assert settings.log_level == "DEBUG"


def test_load_settings_applies_defaults(monkeypatch) -> None:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.database_url is None
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.tts_api_key is None
    assert settings.cors_origins == ("*",)
    assert settings.log_level == "INFO"


def test_load_settings_falls_back_to_google_key(monkeypatch) -> None:
    monkeypatch.delenv("BUZZQUIZ_TTS_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_CLOUD_TTS_API_KEY", "google-key")

    assert load_settings().tts_api_key == "google-key"


def test_configure_logging_returns_package_logger() -> None:
    logger = configure_logging("WARNING")

    assert isinstance(logger, logging.Logger)
    assert logger.name == "buzzquiz"
