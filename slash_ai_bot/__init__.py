"""Discord slash-command bridge to a Gemini text backend with SQLite conversation memory."""

__version__ = "0.1.0"
