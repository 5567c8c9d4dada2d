"""Port contract for streaming text generation.

Provider adapters expose a single ``open_stream`` coroutine that returns a
lazy, finite, non-restartable iterator of text fragments.
"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class FragmentSource(typ.Protocol):
    """Protocol for outbound streaming LLM adapters."""

    async def open_stream(self, model: str, prompt: str) -> cabc.AsyncIterator[str]:
        """Open a fragment stream for ``prompt``.

        Parameters
        ----------
        model : str
            Provider model identifier.
        prompt : str
            Composite prompt text.

        Returns
        -------
        AsyncIterator[str]
            Fragments in generation order.

        Raises
        ------
        TransientProviderError
            If the stream could not be opened but a retry may succeed.
        ProviderError
            If the provider rejected the request.
        """
        ...


__all__ = ("FragmentSource",)
