"""Runtime settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from syncgate.core.errors import ConfigError

# integration name -> settings it cannot run without
_INTEGRATIONS: dict[str, tuple[str, ...]] = {
    "deepseek": ("deepseek_api_key", "deepseek_base_url"),
    "identity": ("supabase_url", "supabase_anon_key"),
    "edge_functions": ("supabase_url", "supabase_service_role_key"),
    "speech": ("tts_base_url",),
    "twilio": ("twilio_account_sid", "twilio_auth_token", "twilio_phone_number"),
    "cron": ("cron_secret",),
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SYNCGATE_", extra="ignore", frozen=True)

    app_name: str = "SyncGate"
    env: str = "dev"
    log_level: str = "info"
    log_dir: str = "logs"
    host: str = "127.0.0.1"
    port: int = 3001
    cors_allow_origin: str = "*"

    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20

    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"
    ai_timeout_seconds: float = 30.0
    chat_max_tokens: int = 1000
    chat_temperature: float = 0.7

    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    edge_function_name: str = "make-server-57781ad9"
    identity_timeout_seconds: float = 5.0
    # False keeps insights/suggestions/tts public; chat always requires a session
    require_auth_for_public_ai: bool = False

    tts_base_url: str = ""
    tts_api_key: str = ""
    tts_model: str = "kokoro"
    tts_default_voice: str = "af_heart"
    tts_response_format: str = "mp3"
    tts_timeout_seconds: float = 15.0
    tts_max_chars: int = 2000

    cron_secret: str = ""
    # False lets cron triggers run unauthenticated while no secret is set (local dev only)
    cron_secret_required: bool = True
    cron_timeout_seconds: float = 30.0

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"
    twilio_timeout_seconds: float = 15.0
    validate_twilio_signature: bool = True
    app_url: str = "http://localhost:3000"
    wakeup_call_to: str = ""
    wakeup_call_voice: str = "Polly.Joanna-Neural"
    wakeup_call_greeting: str = (
        "Good morning! This is your SyncScript wake-up call. "
        "Tell me how you're feeling and I'll help you plan your day."
    )

    guest_sessions_per_ip_per_hour: int = Field(default=5, ge=1)
    guest_messages_per_session: int = Field(default=15, ge=1)
    guest_max_input_messages: int = Field(default=10, ge=1)

    def require(self, *names: str) -> None:
        """Raise ConfigError naming every setting in *names* that is blank."""

        missing = [name for name in names if not str(getattr(self, name, "") or "").strip()]
        if missing:
            env_names = ", ".join(f"{self.model_config.get('env_prefix', '')}{name}".upper() for name in missing)
            raise ConfigError(f"service not configured: missing {env_names}", detail={"missing": missing})

    def missing_integrations(self) -> dict[str, list[str]]:
        report: dict[str, list[str]] = {}
        for integration, names in _INTEGRATIONS.items():
            missing = [name for name in names if not str(getattr(self, name, "") or "").strip()]
            if missing:
                report[integration] = missing
        return report


settings = Settings()
