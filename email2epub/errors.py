"""Exception types shared across the conversion pipeline."""


class ConversionError(Exception):
    """A fatal error: the run stops and the CLI exits non-zero."""


class DownloadError(Exception):
    """A single remote image could not be fetched."""


class SniffError(Exception):
    """The content type of a local file could not be determined."""


class BookError(Exception):
    """The EPUB builder rejected an item or failed to write the book."""
