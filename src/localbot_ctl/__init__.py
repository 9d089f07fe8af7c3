"""localbot-ctl: status, catalog matching, backend control and room resets for local LLM servers."""

__version__ = "1.0.0"
