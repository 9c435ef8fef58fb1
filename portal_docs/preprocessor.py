"""
String-level preparation of portal markup before it reaches the parser.

- Detects the charset of raw response bytes (header first, then <meta>)
- Sanitizes the decoded string (NULL bytes, control characters, line endings)
- Builds a BeautifulSoup tree with a tolerant parser fallback chain

Design principle: NEVER FAIL on bad markup. Always produce something the
parser can walk, even if it is an empty document.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

from .logger import get_module_logger

logger = get_module_logger("preprocessor")

CHARSET_PATTERN = re.compile(r'charset=["\']?\s*([^\s"\';>]+)', re.IGNORECASE)


class Preprocessor:
    """Rule-based markup preprocessor."""

    # WHATWG encoding spec: browsers silently remap these labels.
    # https://encoding.spec.whatwg.org/#names-and-labels
    # The portal serves Czech pages; iso-8859-2 is decoded by browsers as-is,
    # but latin-1 labels must become windows-1252 to match what users see.
    WHATWG_CHARSET_MAP = {
        'iso-8859-1': 'windows-1252',
        'iso8859-1': 'windows-1252',
        'iso88591': 'windows-1252',
        'latin-1': 'windows-1252',
        'latin1': 'windows-1252',
        'us-ascii': 'windows-1252',
        'ascii': 'windows-1252',
        'iso-8859-9': 'windows-1254',
        'iso-8859-11': 'windows-874',
    }

    # Parser fallback chain: html5lib implements the WHATWG tree builder and
    # copes with the portal's unclosed cells; lxml and html.parser are kept
    # for environments where html5lib chokes.
    PARSER_CHAIN = ('html5lib', 'lxml', 'html.parser')

    @classmethod
    def normalize_charset(cls, charset: Optional[str]) -> Optional[str]:
        if not charset:
            return None
        charset = charset.strip().strip('"\'').lower()
        return cls.WHATWG_CHARSET_MAP.get(charset, charset)

    @classmethod
    def charset_from_content_type(cls, content_type: Optional[str]) -> Optional[str]:
        """Extract the charset parameter of a Content-Type header value."""
        if not content_type:
            return None
        m = CHARSET_PATTERN.search(content_type)
        return cls.normalize_charset(m.group(1)) if m else None

    @classmethod
    def detect_charset_from_bytes(cls, raw_bytes: bytes) -> str:
        """
        Detect charset from raw markup bytes by scanning the first 2048 bytes
        for <meta charset=...> or <meta http-equiv="Content-Type" ...>.

        Returns the browser-equivalent charset or 'utf-8' as default.
        """
        # The HTML spec requires the declaration within the first 1024 bytes;
        # 2048 leaves headroom for sloppy pages
        head_str = raw_bytes[:2048].decode('ascii', errors='ignore')

        charset = None
        m = re.search(r'<meta[^>]+charset=["\']?\s*([^\s"\';>]+)', head_str, re.IGNORECASE)
        if m:
            charset = m.group(1)

        return cls.normalize_charset(charset) or 'utf-8'

    @classmethod
    def decode(cls, raw_bytes: bytes, content_type: Optional[str] = None) -> str:
        """Decode response bytes using the header charset, else the <meta> charset."""
        charset = cls.charset_from_content_type(content_type) or cls.detect_charset_from_bytes(raw_bytes)
        try:
            return raw_bytes.decode(charset, errors='replace')
        except LookupError:
            logger.warning(f"Unknown charset '{charset}', decoding as utf-8")
            return raw_bytes.decode('utf-8', errors='replace')

    def sanitize(self, html: Optional[str]) -> tuple[str, list[str]]:
        """
        Fix string-level malformations so the tree builder does not choke.

        Returns:
            Tuple of (sanitized markup, list of warnings)
        """
        warnings = []
        if not html:
            return "", warnings
        sanitized = html

        # Lone surrogates from bad upstream decoding become U+FFFD
        sanitized = sanitized.encode('utf-8', errors='replace').decode('utf-8')

        if '\x00' in sanitized:
            sanitized = sanitized.replace('\x00', '')
            warnings.append("Removed NULL bytes")

        sanitized = sanitized.replace('\r\n', '\n').replace('\r', '\n')

        control_chars = ''.join(chr(c) for c in range(32) if c not in (9, 10, 13))
        if any(c in sanitized for c in control_chars):
            sanitized = sanitized.translate(str.maketrans('', '', control_chars))
            warnings.append("Removed control characters")

        logger.debug(f"Sanitization complete. {len(warnings)} fixes applied.")
        return sanitized, warnings

    def to_soup(self, html: Optional[str]) -> tuple[BeautifulSoup, list[str]]:
        """
        Sanitize markup and build a soup, walking PARSER_CHAIN on failure.

        Returns:
            Tuple of (soup, list of warnings)
        """
        sanitized, warnings = self.sanitize(html)

        for parser_name in self.PARSER_CHAIN:
            try:
                return BeautifulSoup(sanitized, parser_name), warnings
            except Exception as e:
                logger.warning(f"{parser_name} parsing failed: {e}")
                warnings.append(f"{parser_name} parsing failed: {e}")

        # Every builder failed; an empty document keeps the parser's contract
        return BeautifulSoup("", 'html.parser'), warnings
