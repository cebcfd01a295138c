import os
from unittest import mock

import pytest
from pydantic import ValidationError

from agentmode.config import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in (
        "AGENTMODE_BACKEND_URL",
        "AGENTMODE_MAX_PARALLEL",
        "AGENTMODE_GOAL_ANALYZER",
        "AGENTMODE_SPLIT_INSTRUCTIONS",
        "AGENTMODE_TOOL_BACKEND",
        "AGENTMODE_CLASSIFICATION_FALLBACK",
        "OPENAI_API_KEY",
        "OPENAI_MODEL",
    ):
        monkeypatch.delenv(key, raising=False)
    empty_env = tmp_path / ".env"
    empty_env.write_text("")
    return str(empty_env)


def test_defaults(clean_env):
    settings = load_settings(clean_env)
    assert settings.backend_url == "http://127.0.0.1:8000"
    assert settings.max_parallel == 4
    assert settings.tool_backend == "http"
    assert settings.goal_analyzer == "off"
    assert settings.classification_fallback is True


def test_environment_values_are_parsed(clean_env, monkeypatch):
    monkeypatch.setenv("AGENTMODE_BACKEND_URL", "http://backend:9000")
    monkeypatch.setenv("AGENTMODE_MAX_PARALLEL", "2")
    monkeypatch.setenv("AGENTMODE_SPLIT_INSTRUCTIONS", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    settings = load_settings(clean_env)
    assert settings.backend_url == "http://backend:9000"
    assert settings.max_parallel == 2
    assert settings.split_instructions is True
    assert settings.openai_api_key == "sk-test"


def test_dotenv_file_is_loaded(tmp_path):
    env_file = tmp_path / "agent.env"
    env_file.write_text("AGENTMODE_GOAL_ANALYZER=llm\nOPENAI_MODEL=gpt-test\n")
    # load_dotenv writes straight into os.environ
    with mock.patch.dict(os.environ):
        settings = load_settings(str(env_file))
    assert settings.goal_analyzer == "llm"
    assert settings.openai_model == "gpt-test"


def test_overrides_win_and_none_is_ignored(clean_env, monkeypatch):
    monkeypatch.setenv("AGENTMODE_MAX_PARALLEL", "2")
    settings = load_settings(clean_env, max_parallel=8, backend_url=None)
    assert settings.max_parallel == 8
    assert settings.backend_url == "http://127.0.0.1:8000"


@pytest.mark.parametrize(
    "key, value",
    [
        ("AGENTMODE_MAX_PARALLEL", "0"),
        ("AGENTMODE_TOOL_BACKEND", "grpc"),
        ("AGENTMODE_GOAL_ANALYZER", "magic"),
    ],
)
def test_invalid_values_are_rejected(clean_env, monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValidationError):
        load_settings(clean_env)
