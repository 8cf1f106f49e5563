"""replyvet: reply-intent classification and booking auto-reply engine."""

__version__ = "0.1.0"
