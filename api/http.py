"""Thin urllib wrapper shared by every backend adapter."""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

__all__ = [
    "ApiError",
    "TransportError",
    "AuthenticationError",
    "DecodeError",
    "ServerError",
    "BackendNotConfigured",
    "HttpClient",
    "basic_auth_header",
]

LOGGER = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0

QueryParams = Union[Iterable[Tuple[str, Any]], Mapping[str, Any]]


class ApiError(Exception):
    """Base class for backend failures. ``str(exc)`` is shown to the user."""


class TransportError(ApiError):
    pass


class AuthenticationError(ApiError):
    pass


class DecodeError(ApiError):
    pass


class ServerError(ApiError):
    def __init__(self, status: int, body: str, context: str = "API request failed") -> None:
        self.status = status
        self.body = body
        message = f"{context} with status: {status}"
        if body:
            message = f"{message} - {body}"
        super().__init__(message)


class BackendNotConfigured(ApiError):
    def __init__(self, backend: str) -> None:
        self.backend = backend
        super().__init__(f"{backend} is not configured")


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class HttpClient:
    """Issue JSON requests against one base URL.

    Instances hold no per-request state, so a single client is shared by all
    dispatcher threads.
    """

    def __init__(self, base_url: str, timeout: float = _DEFAULT_TIMEOUT, name: str = "backend") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.name = name

    def url(self, path: str, params: QueryParams | None = None) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        if params:
            items = params.items() if isinstance(params, Mapping) else params
            pairs = [(key, value) for key, value in items if value is not None]
            if pairs:
                url = f"{url}?{urllib.parse.urlencode(pairs)}"
        return url

    def request(
        self,
        method: str,
        path: str,
        *,
        params: QueryParams | None = None,
        headers: Dict[str, str] | None = None,
        json_body: Any = None,
        form: Mapping[str, str] | None = None,
        allow_empty: bool = False,
    ) -> Any:
        """
        Send a request and decode the JSON response.

        Returns:
            The decoded JSON document, or ``None`` for an empty body when
            ``allow_empty`` is set.

        Raises:
            TransportError, AuthenticationError, DecodeError, ServerError
        """
        url = self.url(path, params)
        headers = dict(headers or {})
        headers.setdefault("accept", "application/json")
        body = None
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            headers.setdefault("content-type", "application/json")
        elif form is not None:
            body = urllib.parse.urlencode(form).encode("utf-8")
            headers.setdefault("content-type", "application/x-www-form-urlencoded")

        request = urllib.request.Request(url, data=body, headers=headers, method=method.upper())
        LOGGER.debug("[%s] %s %s", self.name, method.upper(), url)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = response.getcode()
                content = response.read()
        except urllib.error.HTTPError as exc:
            try:
                text = exc.read().decode("utf-8", errors="replace")
            except Exception:
                text = ""
            LOGGER.debug("[%s] %s %s -> %s", self.name, method.upper(), url, exc.code)
            if exc.code in (401, 403):
                raise AuthenticationError(f"{self.name} rejected credentials: {exc.code} - {text}") from exc
            raise ServerError(exc.code, text) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise TransportError(f"Failed to reach {self.name}: {reason}") from exc

        LOGGER.debug("[%s] %s %s -> %s (%d bytes)", self.name, method.upper(), url, status, len(content))
        text = content.decode("utf-8", errors="replace").strip()
        if not text or text == "null":
            if allow_empty:
                return None
            raise DecodeError(f"{self.name} returned an empty response")
        try:
            return json.loads(text)
        except ValueError as exc:
            raise DecodeError(f"Failed to parse {self.name} response: {exc}") from exc
