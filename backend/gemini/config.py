"""
Model chain for the Gemini client.

The primary model (GEMINI_MODEL, falling back to gemini-2.5-flash) is tried
first; the shared flash models follow so a quota error on the primary still
leaves something to call.
"""

import os
from typing import Optional

DEFAULT_PRIMARY_MODEL = "gemini-2.5-flash"


def build_model_chain(primary: Optional[str] = None) -> list[str]:
    """Primary model first, then the shared fallbacks, without duplicates."""
    return list(dict.fromkeys([
        primary or DEFAULT_PRIMARY_MODEL,
        "gemini-2.5-flash",
        "gemini-2.0-flash",
    ]))


GEMINI_MODEL_CHAIN = build_model_chain(os.environ.get("GEMINI_MODEL"))
