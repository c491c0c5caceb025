import yaml

from edusync.core.config import DEFAULT_CONFIG, Config, merge_defaults


def test_creates_default_config_file(tmp_path):
    path = tmp_path / "conf" / "config.yaml"
    config = Config(config_path=str(path), watch=False)

    assert path.exists()
    assert config.get("backend", "base_url") == "http://localhost:8080/api"
    assert config.get("session", "store") == "database"
    assert not config.data["logging"]["file"].startswith("~")


def test_missing_sections_fall_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"backend": {"base_url": "https://edu.example/api"}}))

    config = Config(config_path=str(path), watch=False)

    assert config.get("backend", "base_url") == "https://edu.example/api"
    assert config.get("backend", "max_workers") == 8
    assert config.get("api", "enabled") is False


def test_env_substitution_and_dotenv(tmp_path, monkeypatch):
    monkeypatch.delenv("EDUSYNC_TEST_URL", raising=False)
    monkeypatch.setenv("EDUSYNC_TEST_PROFILE", "from-env")
    (tmp_path / ".env").write_text('# comment\nEDUSYNC_TEST_URL="https://dotenv.example/api"\n')
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "backend": {"base_url": "${EDUSYNC_TEST_URL}"},
        "session": {"profile": "$EDUSYNC_TEST_PROFILE"},
        "window": {"title": "$EDUSYNC_UNSET_VARIABLE"},
    }))

    config = Config(config_path=str(path), watch=False)

    assert config.get("backend", "base_url") == "https://dotenv.example/api"
    assert config.get("session", "profile") == "from-env"
    assert config.get("window", "title") == "$EDUSYNC_UNSET_VARIABLE"


def test_reload_keeps_previous_config_on_bad_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"backend": {"timeout": 5}}))
    config = Config(config_path=str(path), watch=False)
    seen = []
    config.register_change_callback(seen.append)

    path.write_text("backend: [unclosed")
    config.reload()

    assert config.get("backend", "timeout") == 5
    assert len(seen) == 1


def test_reload_notifies_with_new_data(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"logging": {"level": "INFO"}}))
    config = Config(config_path=str(path), watch=False)
    seen = []
    config.register_change_callback(seen.append)

    path.write_text(yaml.safe_dump({"logging": {"level": "DEBUG"}}))
    config.reload()

    assert seen[0]["logging"]["level"] == "DEBUG"


def test_merge_defaults_does_not_mutate_defaults():
    merged = merge_defaults({"window": {"width": 10}})
    assert merged["window"]["width"] == 10
    assert DEFAULT_CONFIG["window"]["width"] == 1100
