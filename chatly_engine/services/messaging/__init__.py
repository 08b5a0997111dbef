"""
Message orchestration.
"""

from .send_message import SendMessagePipeline, SendResult

__all__ = ["SendMessagePipeline", "SendResult"]
