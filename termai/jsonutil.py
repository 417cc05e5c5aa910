"""JSON string-literal encoding used by the provider payload builders.

Request bodies are assembled field by field so that each provider's key
order is exactly what its API documents. Every user-controlled string goes
through escape_json_string() before it is placed between quotes.
"""

_SHORT_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def escape_json_string(value: str) -> str:
    """Escape text for use inside a JSON string literal (no quotes added).

    Quote, backslash, newline, carriage return and tab get two-character
    escapes. Remaining control characters (U+0000 to U+001F) become
    ``\\u00XX``. Everything else is passed through unchanged.

    Args:
        value: Raw text.

    Returns:
        The escaped body of a JSON string literal.
    """
    parts = []
    for ch in value:
        short = _SHORT_ESCAPES.get(ch)
        if short is not None:
            parts.append(short)
        elif ord(ch) < 0x20:
            parts.append("\\u{:04x}".format(ord(ch)))
        else:
            parts.append(ch)
    return "".join(parts)


def json_string(value: str) -> str:
    """Return value as a quoted JSON string literal."""
    return '"{}"'.format(escape_json_string(value))


def json_number(value: float) -> str:
    """Render a float so that it always carries a decimal point (0.7, 2.0)."""
    return repr(float(value))
