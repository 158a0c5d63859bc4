import pytest
from pydantic import ValidationError

from docflow_chat.config.settings import Settings


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ("DOCFLOW_CONFIG_FILE", "DOCFLOW_DEFAULT_MODEL", "DOCFLOW_API_BASE_URL"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


def test_yaml_config_is_loaded_below_environment(isolated, monkeypatch):
    config = isolated / "custom.yaml"
    config.write_text("default_model: yaml-model\nflush_interval: 0.2\n", encoding="utf-8")
    monkeypatch.setenv("DOCFLOW_CONFIG_FILE", str(config))

    s = Settings()
    assert s.default_model == "yaml-model"
    assert s.flush_interval == 0.2

    monkeypatch.setenv("DOCFLOW_DEFAULT_MODEL", "env-model")
    assert Settings().default_model == "env-model"


def test_base_url_trailing_slash_is_stripped(isolated):
    assert Settings(api_base_url="http://api.test/").api_base_url == "http://api.test"


def test_brainstorm_bounds_are_validated(isolated):
    with pytest.raises(ValidationError):
        Settings(brainstorm_min_count=4, brainstorm_max_count=2)


def test_defaults_match_backend_limits(isolated):
    s = Settings()
    assert s.http_timeout == 80.0
    assert (s.brainstorm_min_count, s.brainstorm_max_count) == (1, 5)
    assert s.request_retries == 2 and s.mutation_retries == 1
