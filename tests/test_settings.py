"""Tests for backend settings parsing."""

import pytest

from llm_gateway.core.exceptions import ConfigurationError
from llm_gateway.core.settings import (
    DEFAULT_NATIVE_API_ROOT,
    NativeProviderSettings,
    OpenAICompatibleSettings,
    conversation_settings,
    parse_backend_entry,
    parse_backend_settings,
)


class TestParseBackendEntry:
    def test_base_url_selects_openai_compatible(self):
        settings = parse_backend_entry(
            "acme",
            {"base_url": "https://api.acme.example/v1", "api_key": "k", "model": "m"},
        )
        assert isinstance(settings, OpenAICompatibleSettings)
        assert settings.base_url == "https://api.acme.example/v1"
        assert settings.model == "m"

    def test_legacy_url_and_token_aliases(self):
        settings = parse_backend_entry(
            "legacy", {"url": "http://legacy.local/v1", "token": "t", "model": "m"}
        )
        assert isinstance(settings, OpenAICompatibleSettings)
        assert settings.api_key == "t"

    def test_missing_base_url_selects_native(self):
        settings = parse_backend_entry("gemini", {"api_key": "k", "model": "gemini-pro"})
        assert isinstance(settings, NativeProviderSettings)
        assert settings.api_root == DEFAULT_NATIVE_API_ROOT

    def test_timeout_parsed_as_float(self):
        settings = parse_backend_entry(
            "acme", {"base_url": "http://a/v1", "api_key": "k", "model": "m", "request_timeout": "15"}
        )
        assert settings.timeout == 15.0

    def test_invalid_timeout_ignored(self):
        settings = parse_backend_entry(
            "acme", {"base_url": "http://a/v1", "api_key": "k", "model": "m", "request_timeout": "soon"}
        )
        assert settings.timeout is None

    @pytest.mark.parametrize(
        "entry",
        [
            {"base_url": "http://a/v1", "model": "m"},
            {"base_url": "http://a/v1", "api_key": "k"},
            "not-a-mapping",
        ],
    )
    def test_incomplete_entries_rejected(self, entry):
        with pytest.raises(ConfigurationError):
            parse_backend_entry("broken", entry)

    def test_settings_are_immutable(self):
        settings = parse_backend_entry("gemini", {"api_key": "k", "model": "m"})
        with pytest.raises(AttributeError):
            settings.model = "other"


class TestBuildUrl:
    def test_openai_url_joins_path(self):
        settings = OpenAICompatibleSettings(base_url="http://acme.local/v1/", api_key="k", model="m")
        assert settings.build_url("chat/completions") == "http://acme.local/v1/chat/completions"

    def test_native_urls(self):
        settings = NativeProviderSettings(api_key="k", model="gemini-pro", api_root="http://n.local/v1beta")
        assert settings.build_url("generateContent") == (
            "http://n.local/v1beta/models/gemini-pro:generateContent"
        )
        assert settings.build_url("streamGenerateContent", stream=True) == (
            "http://n.local/v1beta/models/gemini-pro:streamGenerateContent?alt=sse"
        )


def test_parse_backend_settings_keys_by_name():
    settings = parse_backend_settings(
        {
            "backends": {
                "acme": {"base_url": "http://a/v1", "api_key": "k", "model": "m"},
                "gemini": {"api_key": "k", "model": "g"},
            }
        }
    )
    assert set(settings) == {"acme", "gemini"}


def test_parse_backend_settings_rejects_list():
    with pytest.raises(ConfigurationError):
        parse_backend_settings({"backends": [{"api_key": "k"}]})


def test_conversation_settings_defaults():
    options = conversation_settings({})
    assert options == {
        "default_path": "conversation_history.json",
        "record_turns": True,
        "forward_messages": "last",
    }


def test_forward_mode_defaults_to_all_without_recording():
    options = conversation_settings({"gateway_settings": {"conversation": {"record_turns": False}}})
    assert options["forward_messages"] == "all"


def test_explicit_forward_mode_is_kept(caplog):
    with caplog.at_level("WARNING", logger="llm-gateway"):
        options = conversation_settings(
            {"gateway_settings": {"conversation": {"record_turns": True, "forward_messages": "ALL"}}}
        )
    assert options["forward_messages"] == "all"
    assert any("duplicated upstream" in record.message for record in caplog.records)


def test_conversation_settings_unknown_forward_mode_falls_back():
    options = conversation_settings(
        {"gateway_settings": {"conversation": {"forward_messages": "some", "record_turns": "no"}}}
    )
    assert options["forward_messages"] == "all"
    assert options["record_turns"] is False
