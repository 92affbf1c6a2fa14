"""OpenAI-compatible chat completions proxy for NVIDIA NIM."""

__version__ = "1.0.0"
