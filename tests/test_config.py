"""Tests for the Config class."""

import logging
import os
from importlib import reload
from pathlib import Path
from unittest.mock import patch

import pytest

from studybot import config as config_module
from studybot.config import Config
from studybot.models import SamplingParams


def test_get_openai_api_key_from_env():
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        assert Config.get_openai_api_key() == "test-api-key"


def test_get_openai_api_key_empty_when_not_set():
    with patch.dict(os.environ, {}, clear=True):
        assert not Config.get_openai_api_key()


def test_validate_success_with_api_key():
    with (
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
        patch.object(Config, "VECTOR_BACKEND", "qdrant"),
        patch.object(Config, "QDRANT_URL", "http://localhost:6333"),
    ):
        Config.validate()


def test_validate_fails_without_api_key():
    with (
        patch.object(Config, "get_openai_api_key", return_value=""),
        pytest.raises(ValueError, match="OPENAI_API_KEY is required"),
    ):
        Config.validate()


def test_validate_rejects_unknown_backend():
    with (
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
        patch.object(Config, "VECTOR_BACKEND", "chroma"),
        pytest.raises(ValueError, match="Unsupported vector store backend"),
    ):
        Config.validate()


def test_validate_requires_qdrant_url():
    with (
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
        patch.object(Config, "VECTOR_BACKEND", "qdrant"),
        patch.object(Config, "QDRANT_URL", ""),
        pytest.raises(ValueError, match="QDRANT_URL is required"),
    ):
        Config.validate()


@pytest.mark.parametrize(
    ("env_var", "default_value", "test_value", "expected_type"),
    [
        ("CHAT_MODEL", "gpt-4o-mini", "gpt-4.1-mini", str),
        ("CHAT_MAX_TOKENS", 500, "800", int),
        ("CHAT_TEMPERATURE", 0.4, "0.2", float),
        ("SIMILARITY_THRESHOLD", 0.55, "0.6", float),
        ("MIN_RELEVANT_DOCS", 1, "2", int),
        ("RETRIEVAL_TOP_K", 5, "8", int),
        ("QUERY_REWRITE_WORD_THRESHOLD", 10, "12", int),
        ("QDRANT_COLLECTION", "studybot", "campus", str),
    ],
)
def test_config_loading_from_env(env_var, default_value, test_value, expected_type):
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == default_value

    with patch.dict(os.environ, {env_var: test_value}):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == expected_type(test_value)

    reload(config_module)


def test_database_path_from_env():
    with patch.dict(os.environ, {"DATABASE_PATH": "/custom/studybot.db"}):
        reload(config_module)
        assert config_module.Config.DATABASE_PATH == Path("/custom/studybot.db")
    reload(config_module)


def test_vector_backend_is_lowercased():
    with patch.dict(os.environ, {"VECTOR_BACKEND": "FAISS"}):
        reload(config_module)
        assert config_module.Config.VECTOR_BACKEND == "faiss"
    reload(config_module)


def test_sampling_params_follow_chat_settings():
    with (
        patch.object(Config, "CHAT_TEMPERATURE", 0.1),
        patch.object(Config, "CHAT_MAX_TOKENS", 321),
    ):
        params = Config.sampling_params()

    assert isinstance(params, SamplingParams)
    assert params.temperature == 0.1
    assert params.max_tokens == 321
    assert set(params.as_kwargs()) == {
        "temperature",
        "max_tokens",
        "top_p",
        "frequency_penalty",
        "presence_penalty",
    }


def test_setup_logging_quiets_third_party_loggers():
    with (
        patch.object(Config, "LOG_LEVEL", "DEBUG"),
        patch.object(Config, "OPENAI_LOG_LEVEL", "ERROR"),
        patch("studybot.config.logging.basicConfig") as mock_basic,
    ):
        Config.setup_logging()

    mock_basic.assert_called_once_with(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    for name in ("openai", "httpx", "qdrant_client"):
        assert logging.getLogger(name).level == logging.ERROR


def test_api_headers_include_user_agent():
    with patch.object(Config, "API_USER_AGENT", "StudyBot/test"):
        assert Config.get_api_headers() == {"User-Agent": "StudyBot/test"}

    with patch.object(Config, "API_USER_AGENT", ""):
        assert Config.get_api_headers() == {}


def test_type_conversion_errors():
    with (
        patch.dict(os.environ, {"CHUNK_SIZE": "not_a_number"}),
        pytest.raises(ValueError, match="invalid literal for int"),
    ):
        reload(config_module)
    reload(config_module)
