"""
Safe ASCII file names for generated documents.

The result is used both as a path component and inside a
Content-Disposition header, so only [A-Za-z0-9._-] survives.
"""
import re

DEFAULT_FILENAME_BASE = "degerlendirme"
MAX_FILENAME_LENGTH = 100

TURKISH_TO_ASCII = str.maketrans({
    'ç': 'c', 'Ç': 'C',
    'ğ': 'g', 'Ğ': 'G',
    'ı': 'i', 'İ': 'I',
    'ö': 'o', 'Ö': 'O',
    'ş': 's', 'Ş': 'S',
    'ü': 'u', 'Ü': 'U',
})

_WHITESPACE_RE = re.compile(r'\s+')
_UNSAFE_RE = re.compile(r'[^A-Za-z0-9._-]')


def normalize_turkish_to_ascii(text):
    """Replace Turkish letters with their closest ASCII letter."""
    return (text or '').translate(TURKISH_TO_ASCII)


def make_safe_filename_base(name):
    """Convert any name into a non-empty, filesystem- and header-safe base name.

    >>> make_safe_filename_base("Ayşe Öztürk")
    'Ayse_Ozturk'
    """
    text = str(name).strip() if name is not None else ''
    if not text:
        text = DEFAULT_FILENAME_BASE
    ascii_text = normalize_turkish_to_ascii(text)
    replaced = _WHITESPACE_RE.sub('_', ascii_text)
    safe = _UNSAFE_RE.sub('', replaced)[:MAX_FILENAME_LENGTH]
    return safe or DEFAULT_FILENAME_BASE


def attachment_filename(student_name):
    return make_safe_filename_base(student_name) + '.docx'
