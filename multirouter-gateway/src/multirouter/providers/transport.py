"""HTTP plumbing shared by the backend adapters.

Upstream chat APIs all stream Server-Sent Events; this module opens the
streamed request, turns non-2xx responses into ``ProviderError`` and wraps
the event body as a closable fragment iterator.
"""

import json
import logging
from typing import Any, AsyncIterator, Callable, Iterable

import httpx

from multirouter.providers.base import ProviderError


logger = logging.getLogger(__name__)

# Pulls zero or more text fragments out of one decoded SSE payload
FragmentExtractor = Callable[[dict[str, Any]], Iterable[str]]


def build_client(
    base_url: str,
    headers: dict[str, str],
    timeout: float,
    connect_timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the HTTP client used by one backend instance."""
    return httpx.AsyncClient(
        transport=transport,
        base_url=base_url.rstrip("/"),
        headers={"Content-Type": "application/json", **headers},
        timeout=httpx.Timeout(timeout=timeout, connect=connect_timeout),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text


async def open_event_stream(
    client: httpx.AsyncClient,
    path: str,
    payload: dict[str, Any],
    provider: str,
    extract: FragmentExtractor,
    params: dict[str, str] | None = None,
) -> "FragmentStream":
    """Send a streaming request and return its fragment stream.

    Args:
        client: Backend HTTP client.
        path: Request path relative to the client's base URL.
        payload: JSON body.
        provider: Backend name used in error messages.
        extract: Function pulling text fragments out of each event payload.
        params: Optional query parameters.

    Returns:
        FragmentStream over the response body.

    Raises:
        ProviderError: On a non-2xx status or a transport failure.
    """
    request = client.build_request("POST", path, json=payload, params=params)
    try:
        response = await client.send(request, stream=True)
    except httpx.TimeoutException as e:
        raise ProviderError(
            message=f"Request timed out: {e}",
            provider=provider,
            original_error=e,
        ) from e
    except httpx.RequestError as e:
        raise ProviderError(
            message=f"Request failed: {e}",
            provider=provider,
            original_error=e,
        ) from e

    if not response.is_success:
        try:
            await response.aread()
            message = _error_message(response)
        finally:
            await response.aclose()
        raise ProviderError(
            message=message,
            provider=provider,
            status_code=response.status_code,
        )

    return FragmentStream(response, extract, provider)


class FragmentStream:
    """Async iterator of text fragments from a streamed SSE response.

    Closing the stream (explicitly or by exhausting it) closes the
    underlying HTTP response.
    """

    def __init__(
        self,
        response: httpx.Response,
        extract: FragmentExtractor,
        provider: str,
    ) -> None:
        self._response = response
        self._extract = extract
        self._provider = provider
        self._events = self._iter_fragments()

    def __aiter__(self) -> "FragmentStream":
        return self

    async def __anext__(self) -> str:
        try:
            return await self._events.__anext__()
        except StopAsyncIteration:
            await self._response.aclose()
            raise
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        """Stop reading and release the connection."""
        await self._events.aclose()
        await self._response.aclose()

    async def _iter_fragments(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.aiter_lines():
                if not line.startswith("data:"):
                    continue

                data = line[5:].strip()
                if not data:
                    continue
                if data == "[DONE]":
                    return

                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(
                        "Skipping malformed stream event",
                        extra={"provider": self._provider},
                    )
                    continue

                if not isinstance(event, dict):
                    continue

                error = event.get("error")
                if error:
                    code = error.get("code") if isinstance(error, dict) else None
                    message = (
                        error.get("message", str(error))
                        if isinstance(error, dict)
                        else str(error)
                    )
                    raise ProviderError(
                        message=f"Stream error: {message}",
                        provider=self._provider,
                        status_code=code if isinstance(code, int) else None,
                    )

                for fragment in self._extract(event):
                    if fragment:
                        yield fragment

        except httpx.HTTPError as e:
            raise ProviderError(
                message=f"Stream failed: {e}",
                provider=self._provider,
                original_error=e,
            ) from e
