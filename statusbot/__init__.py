"""WhatsApp status scheduler bot."""

__version__ = "1.0.0"
