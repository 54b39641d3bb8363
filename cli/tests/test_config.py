import pytest

from oneclick_cli import config


def _use_tmp_config(tmp_path, monkeypatch) -> None:
    def _config_dir(_: str) -> str:
        return str(tmp_path)

    monkeypatch.setattr(config, "user_config_dir", _config_dir)


def test_load_config_defaults_when_missing(tmp_path, monkeypatch) -> None:
    _use_tmp_config(tmp_path, monkeypatch)
    cfg = config.load_config()
    assert cfg == config.default_config()
    assert cfg.use_china_mirror is None


def test_save_config_omits_unset_mirror(tmp_path, monkeypatch) -> None:
    _use_tmp_config(tmp_path, monkeypatch)
    cfg = config.default_config()
    cfg.health_timeout = 300.0

    path = config.save_config(cfg)
    contents = tmp_path.joinpath("config.toml").read_text(encoding="utf-8")

    assert path.endswith("config.toml")
    assert "use_china_mirror" not in contents
    assert config.load_config().health_timeout == 300.0


def test_from_toml_ignores_bad_values() -> None:
    cfg = config.from_toml(
        {"use_china_mirror": "maybe", "health": {"timeout": -5, "interval": "x"}, "public_ip": {"endpoints": [" "]}}
    )
    assert cfg == config.default_config()


def test_apply_setting_values() -> None:
    cfg = config.default_config()
    config.apply_setting(cfg, "use_china_mirror", "yes")
    config.apply_setting(cfg, "public_ip_endpoints", "https://a.example, https://b.example")
    config.apply_setting(cfg, "health_interval", "1.5")

    assert cfg.use_china_mirror is True
    assert config.get_setting(cfg, "public_ip_endpoints") == "https://a.example,https://b.example"
    assert cfg.health_interval == 1.5

    config.apply_setting(cfg, "use_china_mirror", "ask")
    assert config.get_setting(cfg, "use_china_mirror") == "ask"


def test_apply_setting_rejects_bad_input() -> None:
    cfg = config.default_config()
    with pytest.raises(ValueError):
        config.apply_setting(cfg, "health_timeout", "0")
    with pytest.raises(ValueError):
        config.apply_setting(cfg, "use_china_mirror", "sometimes")
    with pytest.raises(KeyError):
        config.apply_setting(cfg, "base_url", "x")


def test_resolve_install_root_env_override(monkeypatch) -> None:
    cfg = config.default_config()
    monkeypatch.setenv(config.ENV_INSTALL_ROOT, "/srv/apps")
    assert config.resolve_install_root(cfg) == "/srv/apps"
    monkeypatch.delenv(config.ENV_INSTALL_ROOT)
    assert config.resolve_install_root(cfg) == "/root"
