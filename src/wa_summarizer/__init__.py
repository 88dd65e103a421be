"""WhatsApp message capture and debounced Gemini summarization."""

__version__ = "0.3.0"
