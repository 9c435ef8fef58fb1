"""
Sanitization and validation of every field extracted from portal markup.

Nothing scraped enters the data model without passing through one of:
  sanitize_text()      bounded, whitespace-collapsed plain text
  validate_file_name() display/file name safe for a filesystem
  validate_url()       reference that stays on the portal host
"""

import re
from typing import Optional
from urllib.parse import urlsplit

# Residual tags that sometimes survive get_text() on broken markup (e.g. "< /b>")
HTML_TAG_PATTERN = re.compile(r'<\s*/?\s*[a-zA-Z][^<>]*>')

# C0/C1 control characters; tab/newline are handled by whitespace collapsing
CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')

WHITESPACE_PATTERN = re.compile(r'\s+')

# Characters that are unsafe in file names on at least one major platform
FILE_NAME_FORBIDDEN = re.compile(r'[\\/:*?"<>|]')

MAX_FILE_NAME_LENGTH = 255
MAX_URL_LENGTH = 2048

BLOCKED_URL_SCHEMES = ('javascript', 'data', 'vbscript', 'file')


def sanitize_text(text: Optional[str], max_length: int = 500) -> str:
    """
    Return text with tags and control characters removed, whitespace
    collapsed, and length bounded to max_length characters.
    """
    if not text:
        return ""
    cleaned = HTML_TAG_PATTERN.sub(' ', text)
    cleaned = CONTROL_CHARS_PATTERN.sub('', cleaned)
    cleaned = WHITESPACE_PATTERN.sub(' ', cleaned).strip()
    if max_length > 0 and len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip()
    return cleaned


def validate_file_name(name: Optional[str]) -> str:
    """
    Return a display name usable as a file name, or "" if nothing usable remains.

    Path separators and reserved characters are replaced, leading dots are
    removed so the name can never point outside a target directory.
    """
    cleaned = sanitize_text(name, MAX_FILE_NAME_LENGTH)
    if not cleaned:
        return ""
    cleaned = FILE_NAME_FORBIDDEN.sub('_', cleaned)
    cleaned = cleaned.lstrip('. ')
    if not cleaned or set(cleaned) <= {'_'}:
        return ""
    return cleaned


def validate_url(url: Optional[str], allowed_host: str) -> Optional[str]:
    """
    Vet a reference extracted from an anchor.

    Relative references are accepted as-is. Absolute (and protocol-relative)
    references must use http(s) and point at allowed_host. Returns the
    stripped reference, or None when it is rejected.
    """
    if not url:
        return None
    candidate = url.strip()
    if not candidate or candidate == '#' or candidate.startswith('#'):
        return None
    if len(candidate) > MAX_URL_LENGTH:
        return None
    if CONTROL_CHARS_PATTERN.search(candidate) or any(c.isspace() for c in candidate):
        return None

    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme in BLOCKED_URL_SCHEMES:
        return None

    if scheme or candidate.startswith('//'):
        if scheme and scheme not in ('http', 'https'):
            return None
        try:
            host = (parts.hostname or '').lower()
        except ValueError:
            return None
        if host != allowed_host.lower():
            return None

    return candidate
