import importlib
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))  # noqa: E402

import pytest  # noqa: E402
from pydantic import ValidationError  # noqa: E402

import config  # noqa: E402


def test_import_does_not_read_environment(monkeypatch):
    monkeypatch.setenv("ENHANCER_LOG_LEVEL", "chatty")
    importlib.reload(config)

    with pytest.raises(ValidationError):
        config.get_settings()


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ENHANCER_LOG_LEVEL", "debug")
    monkeypatch.setenv("ENHANCER_DEFAULT_PROVIDER", "ollama")

    settings = config.get_settings()
    assert settings.log_level == "DEBUG"
    assert settings.default_provider == "ollama"
