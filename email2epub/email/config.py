"""
Centralised constants for email handling.

Charset aliases, content-type -> extension mapping and the header rows
rendered into each chapter live here.
"""

from __future__ import annotations

import re
from typing import Dict, List, Tuple

# ---------------------------------------------------------------------------
# RFC 2047 encoded words
# ---------------------------------------------------------------------------

ENCODED_WORD_MARKERS: Tuple[str, ...] = ("?Q?", "?B?")

B_ENCODED_WORD_RE = re.compile(r"=\?([^?\s]+)\?([bB])\?([^?\s]*)\?=")

# WHATWG-style labels that Python's codec registry does not resolve the same
# way browsers and mail clients do.
CHARSET_ALIASES: Dict[str, str] = {
    "gb2312": "gb18030",
    "gbk": "gb18030",
    "x-gbk": "gb18030",
    "ks_c_5601-1987": "cp949",
    "iso-8859-1": "cp1252",
    "latin1": "cp1252",
    "us-ascii": "cp1252",
    "iso-8859-9": "cp1254",
    "tis-620": "cp874",
    "x-sjis": "shift_jis",
    "x-mac-roman": "mac_roman",
    "unicode-1-1-utf-8": "utf-8",
    "utf8": "utf-8",
}

FALLBACK_CHARSET = "utf-8"

# ---------------------------------------------------------------------------
# Content-type -> extension (mimetypes is unreliable for several of these)
# ---------------------------------------------------------------------------

CONTENT_TYPE_EXTENSION_MAP: Dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/pjpeg": ".jpg",
    "image/png": ".png",
    "image/apng": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/x-ms-bmp": ".bmp",
    "image/tiff": ".tiff",
    "image/svg+xml": ".svg",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
    "image/avif": ".avif",
    "text/plain": ".txt",
    "text/html": ".html",
    "text/css": ".css",
    "application/pdf": ".pdf",
    "application/zip": ".zip",
    "application/json": ".json",
    "application/xml": ".xml",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}

# ---------------------------------------------------------------------------
# Chapter info block
# ---------------------------------------------------------------------------

INFO_ROW_TEMPLATE = (
    '<p style="color:#999; margin: 8px;">{label}:&nbsp;'
    '<span style="color:#666; text-decoration:none;">{value}</span></p>'
)
INFO_BOX_TEMPLATE = '<div style="padding: 8px;">{rows}</div>'

# (label, EmailMessage attribute) rows rendered only when non-empty
OPTIONAL_RECIPIENT_ROWS: List[Tuple[str, str]] = [
    ("ReplyTo", "reply_to"),
    ("Bcc", "bcc"),
    ("Cc", "cc"),
]
