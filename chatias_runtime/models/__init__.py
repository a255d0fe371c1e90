"""State and result types."""
