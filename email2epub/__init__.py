"""
email2epub: convert ``.eml`` files into a single EPUB book.

Main entry points:
- ``EmailToEpub`` : one conversion run (``email2epub.pipeline``)
- ``Settings``    : environment-driven configuration (``email2epub.config``)
"""

from email2epub.config import Settings, get_settings
from email2epub.errors import ConversionError
from email2epub.models import BookOptions
from email2epub.pipeline import EmailToEpub

__all__ = [
    "BookOptions",
    "ConversionError",
    "EmailToEpub",
    "Settings",
    "get_settings",
]

__version__ = "1.0.0"
