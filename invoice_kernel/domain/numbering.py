"""
Display form of invoice numbers.

The displayed number is the plain concatenation ``prefix + number + suffix``
(``FAC-`` + ``12`` + ``""`` -> ``FAC-12``).  The number is never padded,
so ``FAC-012`` is not a valid display form.
"""

import re


def format_invoice_number(prefix: str, number: int, suffix: str) -> str:
    """Return the human-facing invoice number."""
    if number < 1:
        raise ValueError(f"Invoice number must be positive, got {number}")
    return f"{prefix}{number}{suffix}"


def parse_invoice_number(display: str, prefix: str, suffix: str) -> int | None:
    """
    Extract the numeric part of ``display`` for a known prefix/suffix.

    Returns None when ``display`` does not have that shape.
    """
    pattern = rf"^{re.escape(prefix)}([1-9]\d*){re.escape(suffix)}$"
    match = re.match(pattern, display)
    if match is None:
        return None
    return int(match.group(1))


def affix_error(prefix: str, suffix: str) -> str | None:
    """
    Reason why ``prefix``/``suffix`` could make two numbers display alike.

    A prefix ending in a digit or a suffix starting with one runs into the
    number itself (``FAC-1`` + ``13`` reads as ``FAC-`` + ``113``).
    Returns None when the pair is acceptable.
    """
    if prefix[-1:].isdigit():
        return f"prefix {prefix!r} must not end with a digit"
    if suffix[:1].isdigit():
        return f"suffix {suffix!r} must not start with a digit"
    return None
