import json
import pytest
import main
from api_proxy.config.settings import Settings
from api_proxy.core.errors import ConfigError


@pytest.fixture
def fake_run(monkeypatch):
    calls = []
    monkeypatch.setattr(main, "load_dotenv", lambda: None)
    monkeypatch.setattr(main, "configure_logging", lambda: None)
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    return calls


def test_settings_defaults():
    settings = Settings.from_env({})

    assert settings.port == 3000
    assert settings.host == "0.0.0.0"
    assert settings.route_config_path == "api-config.json"
    assert settings.static_dir == "public"
    assert settings.static_fallback == "index.html"
    assert settings.upstream_timeout == 30.0
    assert settings.forward_headers == ("content-type",)
    assert settings.upstream_headers == {}


def test_settings_from_env():
    settings = Settings.from_env({
        "PORT": "8081",
        "API_CONFIG_PATH": "/etc/proxy/routes.json",
        "STATIC_FALLBACK": "",
        "UPSTREAM_TIMEOUT": "2.5",
        "FORWARD_HEADERS": "Content-Type, Accept ,X-Request-Id",
        "UPSTREAM_HEADERS": '{"Authorization": "Bearer k"}',
    })

    assert settings.port == 8081
    assert settings.route_config_path == "/etc/proxy/routes.json"
    assert settings.static_fallback is None
    assert settings.upstream_timeout == 2.5
    assert settings.forward_headers == ("content-type", "accept", "x-request-id")
    assert settings.upstream_headers == {"Authorization": "Bearer k"}


@pytest.mark.parametrize("value, expected", [("*", None), ("", ()), (" * ", None)])
def test_forward_headers_wildcard_and_empty(value, expected):
    assert Settings.from_env({"FORWARD_HEADERS": value}).forward_headers == expected


@pytest.mark.parametrize("env, message", [
    ({"PORT": "http"}, "PORT must be an integer"),
    ({"PORT": "70000"}, "PORT out of range"),
    ({"UPSTREAM_TIMEOUT": "soon"}, "UPSTREAM_TIMEOUT must be a number"),
    ({"UPSTREAM_TIMEOUT": "0"}, "UPSTREAM_TIMEOUT must be positive"),
    ({"UPSTREAM_HEADERS": "{"}, "not valid JSON"),
    ({"UPSTREAM_HEADERS": '["a"]'}, "JSON object of string values"),
    ({"UPSTREAM_HEADERS": '{"x": 1}'}, "JSON object of string values"),
])
def test_invalid_settings_are_config_errors(env, message):
    with pytest.raises(ConfigError, match=message):
        Settings.from_env(env)


def test_malformed_route_config_exits_before_serving(tmp_path, monkeypatch, fake_run):
    config = tmp_path / "api-config.json"
    config.write_text('{"users": "http://users.test",')
    monkeypatch.setenv("API_CONFIG_PATH", str(config))

    with pytest.raises(SystemExit) as exc:
        main.main()

    assert exc.value.code == 1
    assert fake_run == []


def test_missing_route_config_exits_before_serving(tmp_path, monkeypatch, fake_run):
    monkeypatch.setenv("API_CONFIG_PATH", str(tmp_path / "absent.json"))

    with pytest.raises(SystemExit) as exc:
        main.main()

    assert exc.value.code == 1
    assert fake_run == []


def test_invalid_port_exits_before_serving(tmp_path, monkeypatch, fake_run):
    config = tmp_path / "api-config.json"
    config.write_text("{}")
    monkeypatch.setenv("API_CONFIG_PATH", str(config))
    monkeypatch.setenv("PORT", "not-a-port")

    with pytest.raises(SystemExit):
        main.main()

    assert fake_run == []


def test_valid_config_starts_server(tmp_path, monkeypatch, fake_run):
    config = tmp_path / "api-config.json"
    config.write_text(json.dumps({"users": "http://users.test"}))
    monkeypatch.setenv("API_CONFIG_PATH", str(config))
    monkeypatch.setenv("PORT", "4321")
    monkeypatch.setenv("STATIC_DIR", str(tmp_path))
    monkeypatch.delenv("HOST", raising=False)

    main.main()

    assert len(fake_run) == 1
    app, kwargs = fake_run[0]
    assert kwargs["port"] == 4321
    assert kwargs["host"] == "0.0.0.0"
    assert callable(app)


def test_non_utf8_route_config_exits_before_serving(tmp_path, monkeypatch, fake_run):
    config = tmp_path / "api-config.json"
    config.write_bytes(b'{"users": "http://users.test/\xff"}')
    monkeypatch.setenv("API_CONFIG_PATH", str(config))

    with pytest.raises(SystemExit) as exc:
        main.main()

    assert exc.value.code == 1
    assert fake_run == []
