"""
Hey Llama - continuously-listening voice assistant with skills.
"""

import logging

# Quiet chatty third-party loggers
logging.getLogger("faster_whisper").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

__version__ = "0.1.0"

__all__ = ["__version__"]
