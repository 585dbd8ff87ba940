"""Marvinous — hourly hardware health reports narrated by a local LLM."""

__version__ = "0.4.0"
