"""HTTP client for a remote node's history endpoints.

Two operations:

* :meth:`HistoryClient.get_history` fetches ``/system/history`` and parses
  the JSON array into :class:`HistoryEntry` objects.  Any status other than
  200 or any content type other than ``application/json`` is an error.
* :meth:`HistoryClient.wait_for_token` polls
  ``/system/history/<token>[/<since>]`` until the remote answers ``true``,
  answers with an error status, or the timeout elapses.  Only the
  "not complete yet" answer is retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from deploy_core.errors import RemoteQueryError, TimedOut
from deploy_core.models.history import HistoryEntry

logger = logging.getLogger(__name__)

HISTORY_PATH = "/system/history"
DEFAULT_POLL_INTERVAL = 1.0


def history_url(site_uri: str) -> str:
    """Return the history endpoint URL for *site_uri*."""
    site_uri = site_uri.rstrip("/")
    if site_uri.endswith(HISTORY_PATH):
        return site_uri
    return site_uri + HISTORY_PATH


class HistoryClient:
    """Synchronous history client.

    Parameters
    ----------
    client:
        Optional pre-configured ``httpx.Client`` (tests pass one with a
        ``MockTransport``).  When omitted a client is created and owned by
        this instance.
    token:
        Bearer token added as ``Authorization`` header.
    poll_interval:
        Seconds between polls in :meth:`wait_for_token`.
    sleep, clock:
        Injectable time functions.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers: dict[str, str] = {}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HistoryClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            return self._client.get(url, params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            raise RemoteQueryError(f"Request to {url} failed: {exc}") from exc

    def get_history(
        self,
        site_uri: str,
        limit: int | None = None,
        revertible_only: bool = False,
    ) -> list[HistoryEntry]:
        """Retrieve the history of the site at *site_uri*.

        Raises
        ------
        RemoteQueryError
            On a non-200 status, a non-JSON content type, or a body that does
            not parse as a list of history entries.
        """
        url = history_url(site_uri)
        params: dict[str, Any] = {}
        if limit is not None and limit > 0:
            params["limit"] = limit
        if revertible_only:
            params["filter"] = "true"

        resp = self._get(url, params)
        if resp.status_code != httpx.codes.OK:
            raise RemoteQueryError(
                f"Request failed due to a [{resp.status_code}:{resp.reason_phrase}] response from the remote server.",
                status_code=resp.status_code,
            )
        content_type = resp.headers.get("content-type", "").split(";", 1)[0].strip()
        if content_type != "application/json":
            raise RemoteQueryError(f"Invalid response content type [{content_type}]", status_code=resp.status_code)

        try:
            payload = resp.json()
            if not isinstance(payload, list):
                raise TypeError(f"expected a JSON array, got {type(payload).__name__}")
            return [HistoryEntry.model_validate(item) for item in payload]
        except (ValueError, TypeError, ValidationError) as exc:
            raise RemoteQueryError(f"Malformed history response: {exc}", status_code=resp.status_code) from exc

    def wait_for_token(
        self,
        site_uri: str,
        token: str,
        since: int | None = None,
        timeout: float = 300.0,
    ) -> None:
        """Block until *token* shows up finished or failed on *site_uri*.

        Parameters
        ----------
        site_uri:
            Base URL of the site (``/system/history`` is appended if missing).
        token:
            Correlation token of the awaited operation.
        since:
            Epoch milliseconds; the remote only considers entries at or after it.
        timeout:
            Overall deadline in seconds.

        Raises
        ------
        RemoteQueryError
            The remote answered with a non-200 status; the message is the
            response body.
        TimedOut
            No poll reported completion before the deadline.
        """
        url = f"{history_url(site_uri)}/{token}"
        if since is not None:
            url += f"/{since}"

        deadline = self._clock() + timeout
        attempts = 0
        while True:
            attempts += 1
            resp = self._get(url)
            body = resp.text.strip()
            if resp.status_code != httpx.codes.OK:
                raise RemoteQueryError(body or "Command failed!", status_code=resp.status_code)
            if body == "true":
                logger.info("Token %s completed after %d poll(s)", token, attempts)
                return
            if self._clock() >= deadline:
                break
            self._sleep(self._poll_interval)
            if self._clock() >= deadline:
                break

        raise TimedOut(f"Timed out after {timeout:.0f}s waiting for {token} to complete ({attempts} poll(s))")
