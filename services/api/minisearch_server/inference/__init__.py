"""OpenAI-compatible inference backend."""
