"""Local usage metrics."""
