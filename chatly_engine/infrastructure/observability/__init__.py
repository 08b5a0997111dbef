from .logging import get_logger, log_side_effect_failure, message_context, setup_logging

__all__ = ["get_logger", "log_side_effect_failure", "message_context", "setup_logging"]
