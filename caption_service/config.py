"""
Configuration module for caption-service.

Uses pydantic-settings to load configuration from environment variables.
This allows runtime tuning of provider timeouts and the transcript allowlist
without code changes.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Note: The env_prefix is set to "CAPTIONS_" but populate_by_name=True allows
    using field names directly. All settings can be set via either:
    - Prefixed: CAPTIONS_<SETTING_NAME> (e.g., CAPTIONS_PROVIDER_TIMEOUT)
    - Unprefixed aliases: HOST, PORT, LOG_LEVEL
    - In .env file

    Environment Variables:
        HOST: Server host (default: 0.0.0.0)
        PORT: Server port (default: 8000)
        LOG_LEVEL: Logging level (default: info)
        DEFAULT_LANG: Language used when the request carries none (default: en)
        PROVIDER_TIMEOUT: Upper bound in seconds for one provider call (default: 45)
            A call that times out is recorded like any other provider failure.
        YTDLP_IMPERSONATE_TARGET: Browser to impersonate for TLS fingerprinting
            (default: "chrome")
        YTDLP_SLEEP_SECONDS: Sleep before each subtitle download (default: 0)
        YTDLP_TEMP_DIR: Directory for temporary subtitle files (default: system temp)
        YTDLP_REQUEST_TIMEOUT: Socket timeout for yt-dlp, must stay below
            PROVIDER_TIMEOUT (default: 30)
        TRANSCRIPT_ALLOWED_DOMAINS: JSON list of hosts the transcript path may fetch
            (default: ["criticalrole.fandom.com"])
        TRANSCRIPT_FETCH_TIMEOUT: Timeout for the wiki content API (default: 15)
        ENABLE_SECURITY_HEADERS: Enable security headers middleware (default: true)
    """

    # ========== Server Configuration ==========

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # ========== Caption Resolution ==========

    default_lang: str = "en"

    # Applied to every (provider, language) attempt separately
    provider_timeout: float = 45.0

    # ========== yt-dlp Provider Settings ==========

    ytdlp_impersonate_target: str = "chrome"

    # Raise this when upstream starts answering with HTTP 429
    ytdlp_sleep_seconds: int = 0

    ytdlp_temp_dir: str | None = None
    ytdlp_request_timeout: int = 30

    # ========== Transcript Page Settings ==========

    transcript_allowed_domains: list[str] = Field(
        default_factory=lambda: ["criticalrole.fandom.com"]
    )
    transcript_fetch_timeout: float = 15.0
    transcript_user_agent: str = "caption-service/0.3 (+transcript extractor)"

    # ========== Security Settings ==========

    enable_security_headers: bool = True

    model_config = SettingsConfigDict(
        env_prefix="CAPTIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def check_timeouts(self) -> "Settings":
        # A timed-out yt-dlp thread keeps running until its own socket timeout
        if self.ytdlp_request_timeout >= self.provider_timeout:
            raise ValueError(
                f"ytdlp_request_timeout ({self.ytdlp_request_timeout}) must be below "
                f"provider_timeout ({self.provider_timeout})"
            )
        return self


# Global settings instance - loaded at startup with environment variables
settings = Settings()
