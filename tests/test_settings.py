import pytest

from copilot.ratelimit import ConfigError
from copilot.settings import Settings, load_cfg, load_settings

ENV_VARS = [
    "DEMO_MODE", "DEMO_MAX_REQ_PER_MINUTE", "DEMO_MAX_REQ_PER_HOUR",
    "DEMO_MAX_TOKENS", "DATA_SEED", "RETRIEVAL_TOP_K",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    assert load_cfg(str(tmp_path / "nope.yaml")) == {}
    s = load_settings(str(tmp_path / "nope.yaml"))
    assert s == Settings()
    assert s.answer_max_tokens == 1024


def test_yaml_values_are_used(tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text(
        "demo:\n  enabled: true\n  max_req_per_minute: 3\n  max_tokens: 200\n"
        "rate_limit:\n  max_buckets: 50\n"
        "retrieval:\n  top_k: 4\n",
        encoding="utf-8",
    )
    s = load_settings(str(p))
    assert s.demo_mode is True
    assert s.max_req_per_minute == 3
    assert s.max_req_per_hour == 30
    assert s.top_k == 4
    assert s.max_buckets == 50
    assert s.answer_max_tokens == 200


def test_env_overrides_yaml(tmp_path, monkeypatch):
    p = tmp_path / "settings.yaml"
    p.write_text("demo:\n  enabled: true\n  max_req_per_minute: 3\n", encoding="utf-8")
    monkeypatch.setenv("DEMO_MODE", "0")
    monkeypatch.setenv("DEMO_MAX_REQ_PER_MINUTE", "9")
    monkeypatch.setenv("DEMO_MAX_REQ_PER_HOUR", "not-a-number")
    s = load_settings(str(p))
    assert s.demo_mode is False
    assert s.max_req_per_minute == 9
    assert s.max_req_per_hour == 30


def test_zero_env_value_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.setenv("DEMO_MODE", "1")
    monkeypatch.setenv("DEMO_MAX_REQ_PER_MINUTE", "0")
    monkeypatch.setenv("DEMO_MAX_REQ_PER_HOUR", "")
    s = load_settings(str(tmp_path / "nope.yaml"))
    assert s.demo_mode is True
    assert s.max_req_per_minute == 6
    assert s.max_req_per_hour == 30


def test_negative_limit_is_config_error(tmp_path, monkeypatch):
    monkeypatch.setenv("DEMO_MAX_REQ_PER_HOUR", "-5")
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "nope.yaml"))


def test_non_mapping_yaml_is_config_error(tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_cfg(str(p))
