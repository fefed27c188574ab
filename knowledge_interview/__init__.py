"""LLM-guided knowledge interviews that turn conversations into dataset instances."""

__version__ = "0.1.0"
