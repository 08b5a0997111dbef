"""
Service layer.

- gateway: cached, deduplicated, admission-controlled store access
- scoring: ranking, notification timing, conversation health, matching
- moderation: screening, reports and ban escalation
- encryption: envelope encryption for encrypted chats
- messaging: the send-message pipeline
"""
