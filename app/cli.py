import argparse
import glob
import logging
import sys
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from pydantic import ValidationError

from email2epub.config import Settings, get_settings
from email2epub.errors import ConversionError
from email2epub.logger import set_level
from email2epub.models import BookOptions
from email2epub.pipeline import EmailToEpub

ABOUT = "email2epub: convert .eml archives into one EPUB book with inline and remote images embedded."


def collect_eml_paths(inputs: List[str]) -> List[str]:
    """Expand the positional arguments; nothing (or a literal ``*.eml``) means every .eml here."""
    if not inputs or inputs == ["*.eml"]:
        return sorted(glob.glob("*.eml"))
    return list(inputs)


def parse_args(settings: Settings, argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="email2epub",
        description="Convert .eml files to a single .epub with images embedded.",
    )
    parser.add_argument("eml", nargs="*", help="List of .eml files (default: *.eml).")
    parser.add_argument("--cover", default=None, help="Set epub cover image.")
    parser.add_argument("--title", default=settings.DEFAULT_TITLE, help="Set epub title.")
    parser.add_argument("--author", default=settings.DEFAULT_AUTHOR, help="Set epub author.")
    parser.add_argument("-o", "--output", default=settings.DEFAULT_OUTPUT, help="Output filename.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose printing.")
    parser.add_argument("--about", action="store_true", help="About.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"[error] invalid configuration: {e}", file=sys.stderr)
        return 1

    args = parse_args(settings, argv)
    if args.about:
        print(ABOUT)
        return 0
    if args.verbose:
        set_level(logging.DEBUG)

    options = BookOptions(title=args.title, author=args.author, cover=args.cover, output=args.output)
    converter = EmailToEpub(settings, options, verbose=args.verbose)
    try:
        output = converter.run(collect_eml_paths(args.eml))
    except ConversionError as e:
        print(f"[error] {e}", file=sys.stderr)
        return 1

    print("EPUB:", output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
