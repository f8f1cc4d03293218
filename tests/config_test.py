import pytest

from bgmi_gateway.config import Settings, load_settings
from bgmi_gateway.errors import ConfigError


def test_defaults():
    settings = load_settings({})
    assert settings == Settings()
    assert settings.admin_id is None
    assert settings.port == 5000


def test_reads_environment():
    settings = load_settings({
        "MONGODB_URL": "mongodb://db:27017",
        "DB_NAME": "scrims",
        "PORT": "8080",
        "ADMIN_ID": " code ",
        "SSE_KEEPALIVE": "2.5",
        "SSE_QUEUE_SIZE": "5",
        "LOG_DIR": "/var/log/bgmi",
    })
    assert settings.mongo_url == "mongodb://db:27017"
    assert settings.db_name == "scrims"
    assert settings.port == 8080
    assert settings.admin_id == " code "
    assert settings.sse_keepalive == 2.5
    assert settings.sse_queue_size == 5
    assert settings.log_dir == "/var/log/bgmi"


def test_blank_admin_code_counts_as_missing():
    assert load_settings({"ADMIN_ID": "   "}).admin_id is None


@pytest.mark.parametrize("env", [
    {"PORT": "eighty"},
    {"PORT": "0"},
    {"SSE_QUEUE_SIZE": "-1"},
    {"STORE_RETRY_DELAY": "soon"},
    {"SSE_KEEPALIVE": "nan"},
    {"STORE_RETRY_DELAY": "inf"},
    {"SSE_KEEPALIVE": "-inf"},
])
def test_malformed_numbers(env):
    with pytest.raises(ConfigError):
        load_settings(env)


def test_dotenv_file_is_loaded(mocker, monkeypatch):
    load_dotenv = mocker.patch("bgmi_gateway.config.load_dotenv")
    monkeypatch.setenv("DB_NAME", "fromenv")

    assert load_settings().db_name == "fromenv"
    load_dotenv.assert_called_once()
