"""Version checks, update notices, file watching, live-reload messages, archive extraction and static serving for web asset builds."""

__version__ = "0.1.0"