"""
Alt Text Generator
Builds alt text for image assets from their title or filename.
"""

import os
import re
import warnings
from enum import Enum
from typing import Optional

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning


class GenerationMode(Enum):
    """How alt text is built for an asset."""
    TITLE_ONLY = "title_only"
    TITLE_AND_SITE = "title_site"
    CLEAN_FILENAME = "filename_clean"


SITE_SEPARATOR = " - "

_SEPARATOR_PATTERN = re.compile(r'[-_\s]+')


def strip_markup(text: Optional[str]) -> str:
    """
    Remove HTML tags (and the contents of script/style blocks) from text
    and decode entities.

    Args:
        text: Raw text, possibly containing markup

    Returns:
        Plain text, trimmed
    """
    if not text:
        return ''

    # Titles and filenames often look like paths or URLs to bs4
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(str(text), 'html.parser')

    for tag in soup(['script', 'style']):
        tag.decompose()

    return soup.get_text().strip()


def clean_filename(filename: Optional[str]) -> Optional[str]:
    """
    Turn a filename into readable words.

    Examples:
        IMG_2024_sunset-at-beach.jpg -> Img 2024 Sunset At Beach
        12345.png -> None

    Args:
        filename: File name, with or without a directory part

    Returns:
        Title-cased words, or None if nothing readable is left
    """
    if not filename:
        return None

    name = os.path.basename(str(filename).replace('\\', '/'))

    # Drop the extension (".jpg" on its own leaves nothing)
    if '.' in name:
        name = name.rsplit('.', 1)[0]

    name = _SEPARATOR_PATTERN.sub(' ', name).strip()

    # Digits alone don't describe anything
    if not any(ch.isalpha() for ch in name):
        return None

    return ' '.join(word.capitalize() for word in name.split(' '))


class AltTextGenerator:
    """Generates alt text using deterministic title/filename rules."""

    def __init__(self, site_name: str = ''):
        """
        Initialize alt text generator.

        Args:
            site_name: Site name appended in TITLE_AND_SITE mode
        """
        self.site_name = strip_markup(site_name)

    def build_alt(self, title: Optional[str], filename: Optional[str],
                  mode: GenerationMode) -> Optional[str]:
        """Generate alt text using this generator's site name."""
        return self.generate(title, filename, mode, self.site_name)

    @staticmethod
    def generate(title: Optional[str], filename: Optional[str],
                 mode: GenerationMode, site_name: str = '') -> Optional[str]:
        """
        Generate alt text for one asset.

        Title-based modes fall back to the cleaned filename when the title
        is empty; the site name is only appended to a real title.

        Args:
            title: Asset title (may contain markup)
            filename: Asset filename including extension
            mode: Generation mode
            site_name: Site name for TITLE_AND_SITE mode

        Returns:
            Plain alt text, or None when there is no usable text
        """
        mode = GenerationMode(mode)

        if mode is not GenerationMode.CLEAN_FILENAME:
            clean_title = strip_markup(title)
            if clean_title:
                site = strip_markup(site_name)
                if mode is GenerationMode.TITLE_AND_SITE and site:
                    return f"{clean_title}{SITE_SEPARATOR}{site}"
                return clean_title

        return clean_filename(strip_markup(filename))
