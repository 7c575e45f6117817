"""
Configuration loader.
Reads settings from the .env file next to this module (and the process
environment) and exposes them as a Settings model.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


class Settings(BaseModel):
    """Runtime settings of the proxy server."""
    tebex_public_token: Optional[str] = Field(None, description="Headless API public token")
    tebex_private_key: Optional[str] = Field(None, description="Headless API private key")
    tebex_server_secret: Optional[str] = Field(None, description="Plugin API server secret")
    tebex_headless_api: str = "https://headless.tebex.io/api"
    tebex_plugin_api: str = "https://plugin.tebex.io"

    discord_client_id: Optional[str] = None
    discord_client_secret: Optional[str] = None
    discord_redirect_uri: Optional[str] = None
    discord_bot_token: Optional[str] = None
    discord_guild_id: Optional[str] = None
    discord_api: str = "https://discord.com/api"

    frontend_url: str = "http://localhost:5173"
    port: int = 3001
    upstream_timeout: float = Field(15.0, gt=0, description="Seconds per upstream call")

    database_url: Optional[str] = Field(None, description="SQLAlchemy URL, overrides DB_*")
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_name: Optional[str] = None

    def secret_status(self) -> dict:
        """Which secrets are present, without their values."""
        names = [
            "tebex_public_token",
            "tebex_private_key",
            "tebex_server_secret",
            "discord_client_id",
            "discord_client_secret",
            "discord_bot_token",
            "discord_guild_id",
        ]
        return {name.upper(): bool(getattr(self, name)) for name in names}


def get_settings() -> Settings:
    return Settings(
        tebex_public_token=_env("TEBEX_PUBLIC_TOKEN"),
        tebex_private_key=_env("TEBEX_PRIVATE_KEY"),
        tebex_server_secret=_env("TEBEX_SERVER_SECRET"),
        tebex_headless_api=_env("TEBEX_HEADLESS_API", "https://headless.tebex.io/api").rstrip("/"),
        tebex_plugin_api=_env("TEBEX_PLUGIN_API", "https://plugin.tebex.io").rstrip("/"),
        discord_client_id=_env("DISCORD_CLIENT_ID"),
        discord_client_secret=_env("DISCORD_CLIENT_SECRET"),
        discord_redirect_uri=_env("DISCORD_REDIRECT_URI"),
        discord_bot_token=_env("DISCORD_BOT_TOKEN"),
        discord_guild_id=_env("DISCORD_GUILD_ID"),
        discord_api=_env("DISCORD_API", "https://discord.com/api").rstrip("/"),
        frontend_url=_env("FRONTEND_URL", "http://localhost:5173").rstrip("/"),
        port=int(_env("PORT", "3001")),
        upstream_timeout=float(_env("UPSTREAM_TIMEOUT", "15")),
        database_url=_env("DATABASE_URL"),
        db_host=_env("DB_HOST", "localhost"),
        db_port=int(_env("DB_PORT", "3306")),
        db_user=_env("DB_USER"),
        db_password=_env("DB_PASSWORD"),
        db_name=_env("DB_NAME"),
    )
