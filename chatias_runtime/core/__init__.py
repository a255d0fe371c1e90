"""Connection orchestration for the agent runtime."""
