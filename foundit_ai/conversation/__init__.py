from .channel import ConversationChannel  # noqa: F401  (re-export)
