import pytest
from pydantic import ValidationError

from syncgate.config.settings import Settings
from syncgate.core.errors import ConfigError


def test_env_prefix_is_applied(monkeypatch):
    monkeypatch.setenv("SYNCGATE_DEEPSEEK_MODEL", "deepseek-reasoner")
    monkeypatch.setenv("SYNCGATE_TTS_MAX_CHARS", "500")
    settings = Settings()
    assert settings.deepseek_model == "deepseek-reasoner"
    assert settings.tts_max_chars == 500


def test_require_names_every_missing_setting():
    settings = Settings(deepseek_api_key="", supabase_url="https://proj.supabase.co", supabase_anon_key="  ")
    with pytest.raises(ConfigError) as excinfo:
        settings.require("deepseek_api_key", "supabase_url", "supabase_anon_key")
    assert excinfo.value.status_code == 503
    assert "SYNCGATE_DEEPSEEK_API_KEY" in excinfo.value.message
    assert "SYNCGATE_SUPABASE_ANON_KEY" in excinfo.value.message
    assert "SUPABASE_URL" not in excinfo.value.message
    assert excinfo.value.detail == {"missing": ["deepseek_api_key", "supabase_anon_key"]}


def test_missing_integrations_report():
    settings = Settings(
        deepseek_api_key="dk",
        supabase_url="https://proj.supabase.co",
        supabase_anon_key="anon",
        supabase_service_role_key="",
        tts_base_url="https://tts.example.com",
        cron_secret="s",
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_phone_number="",
    )
    report = settings.missing_integrations()
    assert set(report) == {"edge_functions", "twilio"}
    assert report["edge_functions"] == ["supabase_service_role_key"]


def test_settings_are_frozen():
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.deepseek_model = "other"
