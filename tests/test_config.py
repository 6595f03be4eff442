from smartlock.config import Config, load_config


def test_defaults(monkeypatch):
    for name in ("CONFIDENCE_THRESHOLD", "FRAME_SKIP", "UNLOCK_DURATION_MS", "MQTT_TOPIC", "GPIO_ENABLED"):
        monkeypatch.delenv(name, raising=False)

    config = Config()
    assert config.CONFIDENCE_THRESHOLD == 35.0
    assert config.CONFIDENCE_LOWER_IS_BETTER is True
    assert config.FRAME_SKIP == 5
    assert config.unlock_duration == 2.0
    assert config.MQTT_TOPIC == "smartlock/control"
    assert config.GPIO_ENABLED is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CONFIDENCE_THRESHOLD", "50")
    monkeypatch.setenv("CONFIDENCE_LOWER_IS_BETTER", "no")
    monkeypatch.setenv("UNLOCK_DURATION_MS", "3500")
    monkeypatch.setenv("MQTT_ENABLED", "TRUE")

    config = Config()
    assert config.CONFIDENCE_THRESHOLD == 50.0
    assert config.CONFIDENCE_LOWER_IS_BETTER is False
    assert config.unlock_duration == 3.5
    assert config.MQTT_ENABLED is True


def test_load_config_reads_env_file(tmp_path, monkeypatch):
    # setenv first so teardown removes whatever load_dotenv writes
    monkeypatch.setenv("ADMIN_PORT", "0")
    monkeypatch.delenv("ADMIN_PORT")
    env_file = tmp_path / ".env"
    env_file.write_text("ADMIN_PORT=9090\n")

    config = load_config(str(env_file))
    assert config.ADMIN_PORT == 9090


def test_storage_paths_follow_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    for name in ("DB_PATH", "ACCESS_IMAGE_DIR", "USER_IMAGE_DIR"):
        monkeypatch.delenv(name, raising=False)

    config = Config()
    assert config.DB_PATH == str(tmp_path / "smartlock.db")
    assert config.ACCESS_IMAGE_DIR == str(tmp_path / "access_images")
    assert config.USER_IMAGE_DIR == str(tmp_path / "user_images")


def test_explicit_storage_path_wins_over_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DB_PATH", "/var/lib/lock.db")

    assert Config().DB_PATH == "/var/lib/lock.db"
