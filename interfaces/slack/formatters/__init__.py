"""
Slack Content Formatters

- Status item templates (/on, /til, /done)
- Digest title, lines and field rendering
"""

from .message_formatter import (
    format_digest_line,
    format_digest_title,
    format_item_message,
    format_owner,
    render_digest_fields,
    render_digest_text,
)

__all__ = [
    'format_digest_line',
    'format_digest_title',
    'format_item_message',
    'format_owner',
    'render_digest_fields',
    'render_digest_text',
]
