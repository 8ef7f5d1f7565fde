from canvas_backend.config import DEFAULT_MODEL, load_settings


def test_defaults():
    settings = load_settings({})
    assert settings.api_key is None
    assert settings.model == DEFAULT_MODEL
    assert settings.history_limit == 50
    assert settings.tick_interval == 0.03
    assert (settings.host, settings.port) == ("127.0.0.1", 8765)


def test_environment_overrides():
    settings = load_settings({
        "OPENAI_API_KEY": "sk-test",
        "SCHEMA_CANVAS_MODEL": "gpt-4o-mini",
        "SCHEMA_CANVAS_PORT": "9000",
        "SCHEMA_CANVAS_TICK_INTERVAL": "0.05",
    })
    assert settings.api_key == "sk-test"
    assert settings.model == "gpt-4o-mini"
    assert settings.port == 9000
    assert settings.tick_interval == 0.05


def test_blank_api_key_counts_as_missing():
    assert load_settings({"OPENAI_API_KEY": ""}).api_key is None
