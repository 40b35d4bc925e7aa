"""Text-to-speech read-along helpers."""
