"""
Slack Integration Module

Slack side of the status bot:
- Slash commands (/on, /til, /done) via slack_bolt
- Message delivery through chat.postMessage
- Workspace user enumeration for digests
- Message and digest formatting

Import submodules directly; this package does not import slack_bolt on load.
"""
