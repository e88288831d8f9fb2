"""
normalizer.py
--------------
Merchant name canonicalization.

The normalized key is what the detector groups on, so "Netflix Inc.",
"NETFLIX  inc" and "netflix" all land in the same bucket.

The suffix must stand as its own word (a word boundary in
_CORPORATE_SUFFIX), so "Zinc" keeps its "inc" and stays "zinc". A bare end-of-string match would
turn it into "z"; that stricter rule is intentional.
"""

import re


_CORPORATE_SUFFIX = re.compile(r"\s*\b(inc|llc|corp|ltd)\.?$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize_merchant_name(merchant: str | None) -> str:
    """
    Returns the grouping key for a merchant display string.

    Lower-cases, strips one trailing corporate suffix (Inc/LLC/Corp/Ltd with
    an optional period), collapses whitespace runs and trims. Never raises.
    """
    if not merchant:
        return ""
    key = str(merchant).lower()
    key = _CORPORATE_SUFFIX.sub("", key)
    key = _WHITESPACE.sub(" ", key)
    return key.strip()
