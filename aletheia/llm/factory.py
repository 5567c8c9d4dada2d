"""Provider selection by configuration."""

from __future__ import annotations

import typing as typ

from aletheia.config import ProviderKind

from .anthropic_stream import AnthropicStreamSource
from .openai_stream import OpenAIStreamSource

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx

    from .http_source import SseFragmentSource

DEFAULT_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "https://api.openai.com",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com",
}


def build_fragment_source(
    kind: ProviderKind,
    *,
    api_key: str = "",
    base_url: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SseFragmentSource:
    """Return the fragment source for ``kind``.

    Parameters
    ----------
    kind : ProviderKind
        Which provider wire format to speak.
    api_key : str
        Credential sent with every request; empty means none.
    base_url : str | None
        Override for the provider endpoint, e.g. a local proxy.
    client : httpx.AsyncClient | None
        Shared client; when omitted the source owns its own.
    """
    url = base_url or DEFAULT_BASE_URLS[kind]
    match kind:
        case ProviderKind.OPENAI:
            return OpenAIStreamSource(base_url=url, api_key=api_key, client=client)
        case ProviderKind.ANTHROPIC:
            return AnthropicStreamSource(base_url=url, api_key=api_key, client=client)


def fragment_source_from_env(
    kind: ProviderKind,
    environ: cabc.Mapping[str, str],
    *,
    client: httpx.AsyncClient | None = None,
) -> SseFragmentSource:
    """Build a fragment source using ``LLM_API_KEY`` and ``LLM_BASE_URL``."""
    return build_fragment_source(
        kind,
        api_key=environ.get("LLM_API_KEY", ""),
        base_url=environ.get("LLM_BASE_URL") or None,
        client=client,
    )


__all__ = ("DEFAULT_BASE_URLS", "build_fragment_source", "fragment_source_from_env")
