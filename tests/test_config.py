import pytest

from pow_shared.config import ClientConfig, load_config
from pow_shared.errors import ConfigError
from pow_shared.messages import RemoteDescriptor


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("POW_SERVER", "POW_TOKEN", "POW_TRANSPORT", "POW_POLL_INTERVAL",
                 "POW_CLOSE_TIMEOUT", "POW_HTTP_POLL_INTERVAL", "POW_LOG_LEVEL", "POW_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    # keep ~/.pow/config.yaml of the developer out of the tests
    monkeypatch.setenv("HOME", str(tmp_path))


def test_defaults():
    config = load_config()
    assert config.server == "ws://localhost:3000"
    assert config.transport == "ws"
    assert config.poll_interval == pytest.approx(0.1)
    assert config.close_timeout == pytest.approx(0.5)
    assert config.remote() == RemoteDescriptor(url="ws://localhost:3000", token=None)


def test_yaml_file_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "pow.yaml"
    path.write_text(
        "server: http://files.example.com\n"
        "transport: http\n"
        "close_timeout: 2\n"
        "colour: blue\n"
    )
    monkeypatch.setenv("POW_SERVER", "http://env.example.com")
    monkeypatch.setenv("POW_HTTP_POLL_INTERVAL", "0.25")

    config = load_config(path)

    assert config.server == "http://env.example.com"
    assert config.transport == "http"
    assert config.close_timeout == 2
    assert config.http_poll_interval == pytest.approx(0.25)


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "other.yaml"
    path.write_text("token: abc\n")
    monkeypatch.setenv("POW_CONFIG", str(path))

    config = load_config()
    assert config.remote().auth_headers() == {"Authorization": "Bearer abc"}


def test_explicit_overrides_win(tmp_path, monkeypatch):
    monkeypatch.setenv("POW_TOKEN", "from-env")
    config = load_config(server="ws://cli:1", token=None, transport="http")
    assert config.server == "ws://cli:1"
    assert config.token == "from-env"
    assert config.transport == "http"


@pytest.mark.parametrize("content", ["- a\n- b\n", "server: [unclosed\n"])
def test_invalid_files(tmp_path, content):
    path = tmp_path / "pow.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_config(path)


def test_invalid_values(monkeypatch):
    with pytest.raises(ConfigError):
        ClientConfig(transport="smoke-signals")
    with pytest.raises(ConfigError):
        ClientConfig(poll_interval=0)
    monkeypatch.setenv("POW_CLOSE_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        load_config()
    with pytest.raises(ConfigError):
        load_config(colour="blue")
