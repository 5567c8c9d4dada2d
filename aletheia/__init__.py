"""AletheIA conversational turn pipeline."""

from __future__ import annotations

PACKAGE_NAME = "aletheia"
