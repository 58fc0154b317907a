"""
Slack Business Logic Services

- Notification delivery (chat.postMessage, one client per token)
- Workspace user enumeration for digests
"""

from .notification_service import SlackNotificationService
from .user_service import SlackUserService

__all__ = ['SlackNotificationService', 'SlackUserService']
