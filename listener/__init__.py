"""Sound-activated audio recorder with a terminal level-setup tool."""

__version__ = "2.0.0"