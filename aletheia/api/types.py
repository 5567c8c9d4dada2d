"""Shared types for the Falcon ledger API adapter."""

from __future__ import annotations

type JsonPayload = dict[str, object]
