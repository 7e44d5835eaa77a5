"""Filename sanitization for downloaded assets."""

import re

_ILLEGAL = re.compile(r'[/\?<>\\:\*\|"]')
_CONTROL = re.compile(r'[\x00-\x1f\x80-\x9f]')
_RESERVED = re.compile(r'^\.+$')
_WINDOWS_RESERVED = re.compile(r'^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$', re.IGNORECASE)
_WINDOWS_TRAILING = re.compile(r'[\. ]+$')

MAX_FILENAME_BYTES = 255


def sanitize_filename(name: str, replacement: str = "") -> str:
    """
    Make a string safe to use as a single path component.
    
    Strips path separators, reserved characters, control characters,
    dot-only names, Windows device names and trailing dots/spaces, then
    truncates to 255 bytes of UTF-8.
    """
    safe = _ILLEGAL.sub(replacement, name)
    safe = _CONTROL.sub(replacement, safe)
    safe = _RESERVED.sub(replacement, safe)
    safe = _WINDOWS_RESERVED.sub(replacement, safe)
    safe = _WINDOWS_TRAILING.sub(replacement, safe)
    
    encoded = safe.encode('utf-8')[:MAX_FILENAME_BYTES]
    return encoded.decode('utf-8', errors='ignore')
