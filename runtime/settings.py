"""
Process settings

Read once from the environment (and `.env.local`, when present) in the entry
points, then passed explicitly to the components that need them.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from runtime.errors import ConfigurationFailure
from runtime.time_utils import TimeFormatError, get_zone, parse_clock

logger = logging.getLogger(__name__)

DEFAULT_ICON_URL = "http://i.imgur.com/fLcxkel.png"


@dataclass(frozen=True)
class Settings:
    """Configuration for the status bot"""
    port: int = 8000
    bot_token: str = ""
    bot_name: str = "oshin"
    bot_icon_url: str = DEFAULT_ICON_URL
    working_channel: str = "#working"

    routing_config_path: str = "config/routing.yaml"
    digest_config_path: Optional[str] = None

    digest_time: str = "09:30"
    schedule_timezone: str = "UTC"
    digest_timezone: str = "UTC"

    # Daily scrum reminder is enabled only when both are set
    dailyscrum_time: Optional[str] = None
    dailyscrum_url: Optional[str] = None
    dailyscrum_channel: str = "#random"

    database_url: Optional[str] = None
    sqlite_path: str = "status_items.db"

    slack_signing_secret: Optional[str] = None
    log_level: str = "INFO"

    @property
    def dailyscrum_enabled(self) -> bool:
        return bool(self.dailyscrum_time and self.dailyscrum_url)

    @property
    def effective_digest_config_path(self) -> str:
        return self.digest_config_path or self.routing_config_path

    def validate(self, require_token: bool = True) -> "Settings":
        """Fail fast on values that would only break at the first tick"""
        if require_token and not self.bot_token:
            raise ConfigurationFailure("BOT_TOKEN is required")
        try:
            parse_clock(self.digest_time)
            if self.dailyscrum_time:
                parse_clock(self.dailyscrum_time)
            get_zone(self.schedule_timezone)
            get_zone(self.digest_timezone)
        except TimeFormatError as e:
            raise ConfigurationFailure(str(e)) from e
        return self


def _get(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv_path: str = ".env.local") -> Settings:
    """Build Settings from environment variables"""
    if env is None:
        # override=True to pick up changes in .env.local
        load_dotenv(dotenv_path, override=True)
        env = os.environ

    port_raw = _get(env, "PORT", "8000")
    try:
        port = int(port_raw)
    except ValueError as e:
        raise ConfigurationFailure(f"PORT must be an integer, got {port_raw!r}") from e

    settings = Settings(
        port=port,
        bot_token=_get(env, "BOT_TOKEN", ""),
        bot_name=_get(env, "BOT_NAME", "oshin"),
        bot_icon_url=_get(env, "BOT_ICON_URL", DEFAULT_ICON_URL),
        working_channel=_get(env, "WORKING_CHANNEL", "#working"),
        routing_config_path=_get(env, "ROUTING_CONFIG_PATH", "config/routing.yaml"),
        digest_config_path=_get(env, "DIGEST_CONFIG_PATH"),
        digest_time=_get(env, "DIGEST_TIME", "09:30"),
        schedule_timezone=_get(env, "SCHEDULE_TIMEZONE", "UTC"),
        digest_timezone=_get(env, "DIGEST_TIMEZONE", "UTC"),
        dailyscrum_time=_get(env, "DAILYSCRUM_TIME"),
        dailyscrum_url=_get(env, "DAILYSCRUM_URL"),
        dailyscrum_channel=_get(env, "DAILYSCRUM_CHANNEL", "#random"),
        database_url=_get(env, "DATABASE_URL"),
        sqlite_path=_get(env, "SQLITE_PATH", "status_items.db"),
        slack_signing_secret=_get(env, "SLACK_SIGNING_SECRET"),
        log_level=_get(env, "LOG_LEVEL", "INFO").upper(),
    )
    logger.info(
        f"Settings loaded: working_channel={settings.working_channel} "
        f"digest_time={settings.digest_time} tz={settings.schedule_timezone} "
        f"backend={'postgres' if settings.database_url else 'sqlite'}"
    )
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
