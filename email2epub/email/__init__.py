"""
Email handling subpackage.

Public API:
- ``EmailParser``      : ``.eml`` -> ``EmailMessage``
- ``HeaderDecoder``    : RFC 2047 encoded-word decoding
- ``AttachmentHandler``: attachment persistence and CID/filename lookup
"""

from email2epub.email.attachment_handler import AttachmentHandler
from email2epub.email.email_parser import EmailParser
from email2epub.email.header_decoder import HeaderDecoder

__all__ = [
    "AttachmentHandler",
    "EmailParser",
    "HeaderDecoder",
]
