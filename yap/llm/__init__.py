"""Chat assistant proxy to a local Ollama runtime."""
