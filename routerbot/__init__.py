"""Telegram chat bot that relays messages to OpenAI-compatible chat completion APIs."""

__version__ = "0.1.0"