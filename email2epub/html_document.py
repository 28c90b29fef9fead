"""
HTML document capability
========================

The pipeline only needs a handful of operations on an email's HTML body:
list the ``<img>`` elements, read/write/remove their attributes, drop them,
and add markup to ``<body>``. ``HtmlDocument`` exposes exactly that over
BeautifulSoup so the rest of the code never touches the parser directly.
"""

from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from email2epub.logger import get_logger

logger = get_logger(__name__)

HTML_PARSER = "html.parser"
INOREADER_AD_MARKER = "ads from inoreader"


class ImageElement:
    """Handle on one ``<img>`` element."""

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    def get(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    def set(self, name: str, value: str) -> None:
        self._tag[name] = value

    def remove_attr(self, name: str) -> None:
        if name in self._tag.attrs:
            del self._tag[name]

    def remove(self) -> None:
        self._tag.decompose()


class HtmlDocument:
    """A parsed HTML body that always has a ``<body>`` element."""

    def __init__(self, soup: BeautifulSoup) -> None:
        self._soup = soup
        self._ensure_body()

    @classmethod
    def parse(cls, html: bytes) -> "HtmlDocument":
        markup = html.decode("utf-8", errors="replace") if isinstance(html, bytes) else html
        return cls(BeautifulSoup(markup, HTML_PARSER))

    def _ensure_body(self) -> None:
        if self._soup.body is not None:
            return
        html_tag = self._soup.html
        if html_tag is None:
            html_tag = self._soup.new_tag("html")
            for child in list(self._soup.contents):
                html_tag.append(child.extract())
            self._soup.append(html_tag)
        body = self._soup.new_tag("body")
        for child in list(html_tag.contents):
            if isinstance(child, Tag) and child.name == "head":
                continue
            body.append(child.extract())
        html_tag.append(body)

    @property
    def body(self) -> Tag:
        return self._soup.body

    def images(self) -> List[ImageElement]:
        """``<img>`` elements in document order."""
        return [ImageElement(tag) for tag in self._soup.find_all("img")]

    def append_to_body(self, markup: str) -> None:
        fragment = BeautifulSoup(markup, HTML_PARSER)
        for child in list(fragment.contents):
            self.body.append(child.extract())

    def body_html(self) -> str:
        """Inner HTML of ``<body>``."""
        return self.body.decode_contents()

    def clean(self) -> "HtmlDocument":
        """Drop Inoreader ad blocks (the ``<center>`` wrapping the ad notice)."""
        for div in self.body.find_all("div"):
            if div.decomposed:
                continue
            if INOREADER_AD_MARKER not in div.get_text():
                continue
            center = div.find_parent("center")
            if center is not None:
                logger.debug("Removing inoreader ad block")
                center.decompose()
        return self

    def __str__(self) -> str:
        return str(self._soup)
