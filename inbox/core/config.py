"""
Application settings.
Loaded from environment variables and .env.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Settings loaded from .env"""

    # App
    APP_NAME: str = "Unified Inbox"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    # Meta Graph API
    GRAPH_API_VERSION: str = "v23.0"

    # Facebook pages (up to two pages are synced)
    FACEBOOK_PAGE_ID: str = ""
    FACEBOOK_PAGE_NAME: str = "Smile Experts Dental"
    FACEBOOK_PAGE_ACCESS_TOKEN: str = ""
    SECOND_FACEBOOK_PAGE_ID: str = ""
    SECOND_FACEBOOK_PAGE_NAME: str = "Smile Experts Dental (Dental Office, Washington, DC)"
    SECOND_FACEBOOK_ACCESS_TOKEN: str = ""

    # Instagram business account
    INSTAGRAM_ACCESS_TOKEN: str = ""
    INSTAGRAM_BUSINESS_ACCOUNT_ID: str = "17841475533389585"
    INSTAGRAM_ACCOUNT_NAME: str = "Smile Experts Dental"
    INSTAGRAM_PAGE_ID: str = ""  # Facebook page connected to the IG account

    # Gmail (OAuth tokens issued by the dashboard's OAuth flow)
    GMAIL_ACCESS_TOKEN: str = ""
    GMAIL_REFRESH_TOKEN: str = ""
    GMAIL_CLIENT_ID: str = ""
    GMAIL_CLIENT_SECRET: str = ""
    GMAIL_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

    # n8n
    N8N_WEBHOOK_URL: str = ""
    AI_ACTIVATION_WEBHOOK_URL: str = ""

    # Sync
    SYNC_INTERVAL_SECONDS: int = 30
    SYNC_AUTOSTART: bool = False

    # AI auto-reply
    AI_REACTIVE_WINDOW_MINUTES: int = 10
    AI_CATCHUP_WINDOW_HOURS: int = 24
    AI_BACKLOG_DELAY_SECONDS: float = 1.0
    AI_FALLBACK_REPLY: str = "Thank you for your message. We'll get back to you soon."
    AI_WEBHOOK_TIMEOUT_SECONDS: float = 30.0

    # CORS - allowed origins (comma separated)
    CORS_ORIGINS: str = "*"

    @property
    def is_production(self) -> bool:
        """True when running in production."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Allowed CORS origins.

        Production deployments should list origins explicitly.
        """
        if self.CORS_ORIGINS == "*":
            if self.is_production:
                import logging
                logging.warning(
                    "CORS_ORIGINS='*' in production. "
                    "Configure explicit origins."
                )
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def facebook_pages(self) -> list[dict]:
        """
        Configured Facebook pages.

        Pages without an id are dropped. The access token may be empty, in
        which case the page still counts as a business identity but is not
        synced.
        """
        pages = [
            {
                "id": self.FACEBOOK_PAGE_ID,
                "name": self.FACEBOOK_PAGE_NAME,
                "access_token": self.FACEBOOK_PAGE_ACCESS_TOKEN,
            },
            {
                "id": self.SECOND_FACEBOOK_PAGE_ID,
                "name": self.SECOND_FACEBOOK_PAGE_NAME,
                "access_token": self.SECOND_FACEBOOK_ACCESS_TOKEN,
            },
        ]
        return [page for page in pages if page["id"]]

    @property
    def gmail_configured(self) -> bool:
        return bool(self.GMAIL_ACCESS_TOKEN or self.GMAIL_REFRESH_TOKEN)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class SyncConfig:
    """
    Page sizes used against the platform APIs.

    The bulk pass keeps pages small; opening a single conversation pulls a
    larger slice of its history.
    """

    FACEBOOK_CONVERSATIONS_LIMIT: int = 200
    FACEBOOK_CONVERSATION_MESSAGES_LIMIT: int = 200

    INSTAGRAM_CONVERSATIONS_LIMIT: int = 50
    INSTAGRAM_MESSAGES_PER_CONVERSATION: int = 25
    INSTAGRAM_CONVERSATION_MESSAGES_LIMIT: int = 100

    GMAIL_MAX_RESULTS: int = 50
    GMAIL_BATCH_SIZE: int = 5
    GMAIL_BATCH_DELAY_SECONDS: float = 0.1

    # Graph API GET retries
    MAX_RETRIES: int = 3


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
