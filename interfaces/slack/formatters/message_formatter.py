"""
Status Message Formatter

Templates for fan-out messages and the single rendering routine for
digests: either a list of (title, value) fields for Slack attachments or,
where fields are unsupported, one flat text block.
"""

from datetime import datetime
from typing import List, Tuple

from models import Digest, MessageType
from runtime.time_utils import cformat

ITEM_TEMPLATES = {
    MessageType.on: "{owner} is working on: {text}",
    MessageType.til: "{owner} #til - Today I learned: {text}",
    MessageType.done: "{owner} has done: {text}",
}

DIGEST_TITLE_TEMPLATE = ":rocket::rocket: >> Team daily digest for *%Y-%m-%d*"
DIGEST_LINE_PREFIX = "+ "


def format_owner(user_id: str, user_name: str) -> str:
    """Slack mention `<@U024BE7LH|bob>` when the id is known"""
    if user_id:
        return f"<@{user_id}|{user_name}>"
    return user_name


def format_item_message(message_type: MessageType, user_id: str, user_name: str, text: str) -> str:
    template = ITEM_TEMPLATES[MessageType(message_type)]
    return template.format(owner=format_owner(user_id, user_name), text=text)


def format_digest_line(text: str) -> str:
    return f"{DIGEST_LINE_PREFIX}{text}"


def format_digest_title(digest_date: datetime, tz: str = "UTC") -> str:
    return cformat(digest_date, DIGEST_TITLE_TEMPLATE, tz)


def render_digest_fields(digest: Digest) -> List[Tuple[str, str]]:
    return [(block.title, block.value) for block in digest.blocks]


def render_digest_text(digest: Digest) -> str:
    parts = [digest.title]
    for block in digest.blocks:
        parts.append(f"*{block.title}*\n{block.value}")
    return "\n\n".join(parts)
