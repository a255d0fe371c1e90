"""ChatIAS runtime bridge: connection, session and summarization against the agent runtime."""

__version__ = "0.1.0"
