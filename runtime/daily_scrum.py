"""Daily scrum reminder job"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

REMINDER_TEMPLATE = "Time for daily scrum <!here|here> {url}"


def format_reminder(url: str) -> str:
    return REMINDER_TEMPLATE.format(url=url)


async def remind_daily_scrum(sink, credential: str, channel: str, url: str,
                             icon_url: Optional[str] = None,
                             display_name: Optional[str] = None) -> None:
    """Post the reminder once. DeliveryFailure propagates to the scheduler, which logs it."""
    await sink.deliver(credential, channel, format_reminder(url),
                       icon_url=icon_url, display_name=display_name)
    logger.info(f"Daily scrum reminder posted to {channel}")
