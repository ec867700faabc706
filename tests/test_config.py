import pytest

from headlines import config


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    mock_config_dir = tmp_path / ".config" / "headlines"
    mock_config_file = mock_config_dir / "config.json"
    monkeypatch.setattr(config, "CONFIG_DIR", mock_config_dir)
    monkeypatch.setattr(config, "CONFIG_FILE", mock_config_file)
    for key in ("STORE_DIR", "CATALOG_PATH", "DIGEST_LIMIT", "TAGGER", "SEEN_MAX_IDS", "LOG_LEVEL"):
        monkeypatch.delenv(f"HEADLINES_{key}", raising=False)
    return mock_config_file


def test_config_workflow(config_file):
    # 1. Load non-existent config
    assert config.load_config() == {}
    assert config.get_settings() == config.Settings()

    # 2. Save config
    config.save_config("digest_limit", "7")
    assert config_file.exists()

    # 3. Settings pick it up
    assert config.get_settings().digest_limit == 7

    # 4. Save another key
    config.save_config("tagger", "keyword")
    assert config.load_config() == {"digest_limit": "7", "tagger": "keyword"}
    assert config.get_settings().tagger == "keyword"


def test_load_corrupt_config(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("invalid json{")
    assert config.load_config() == {}


def test_env_overrides_file(config_file, monkeypatch):
    config.save_config("store_dir", "/from/file")
    monkeypatch.setenv("HEADLINES_STORE_DIR", "/from/env")
    monkeypatch.setenv("HEADLINES_SEEN_MAX_IDS", "250")
    monkeypatch.setenv("HEADLINES_LOG_LEVEL", "debug")

    settings = config.get_settings()
    assert settings.store_dir == "/from/env"
    assert settings.seen_max_ids == 250
    assert settings.log_level == "DEBUG"


def test_invalid_values_fall_back_to_defaults(config_file, monkeypatch):
    monkeypatch.setenv("HEADLINES_DIGEST_LIMIT", "many")
    monkeypatch.setenv("HEADLINES_TAGGER", "oracle")

    settings = config.get_settings()
    assert settings.digest_limit == 5
    assert settings.tagger == "llm"
