"""
OAuth 1.0a Launch Messages

Adapters between an incoming launch request and the RFC 5849 signature
primitives provided by oauthlib: a read-only parameter source, the signed
message assembled from it, the signature base string and the credential
used to check the signature.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    Any, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple, Union,
    runtime_checkable
)
from urllib.parse import parse_qsl, urlsplit

from oauthlib.oauth1.rfc5849 import signature

from ltilaunch.verification.errors import (
    PARAMETER_ABSENT, MalformedURLError, SignatureError
)

logger = logging.getLogger(__name__)

Parameters = Union[Mapping[str, Any], Iterable[Tuple[str, str]]]

SIGNATURE_PARAMETER = "oauth_signature"
CONSUMER_KEY_PARAMETER = "oauth_consumer_key"
_OAUTH_AUTH_SCHEME = "oauth "


@runtime_checkable
class ParameterSource(Protocol):
    """Read-only view of a launch request."""

    http_method: str
    headers: Mapping[str, str]

    def get_parameter(self, name: str) -> Optional[str]:
        ...

    def items(self) -> Iterable[Tuple[str, str]]:
        ...


def _as_pairs(parameters: Parameters) -> List[Tuple[str, str]]:
    if hasattr(parameters, "getlist"):
        # werkzeug/starlette/django multi-dicts
        raw = [(name, value) for name in parameters.keys() for value in parameters.getlist(name)]
    elif isinstance(parameters, Mapping):
        raw = []
        for name, value in parameters.items():
            if isinstance(value, (list, tuple)):
                raw.extend((name, item) for item in value)
            else:
                raw.append((name, value))
    else:
        raw = list(parameters)
    return [(str(name), str(value)) for name, value in raw if value is not None]


class FormParameterSource:
    """
    Parameter source over already-decoded form or query parameters.

    Every (name, value) pair is kept in arrival order so repeated
    parameters take part in the signature; ``get_parameter`` returns the
    first value for a name.
    """

    def __init__(self,
                 parameters: Parameters,
                 http_method: str = "POST",
                 headers: Optional[Mapping[str, str]] = None):
        self._pairs: Tuple[Tuple[str, str], ...] = tuple(_as_pairs(parameters))
        self.http_method = http_method.upper()
        self.headers = dict(headers or {})

    @classmethod
    def from_body(cls,
                  body: Union[str, bytes],
                  http_method: str = "POST",
                  headers: Optional[Mapping[str, str]] = None) -> FormParameterSource:
        """Decode an ``application/x-www-form-urlencoded`` body."""
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return cls(parse_qsl(body, keep_blank_values=True), http_method, headers)

    def get_parameter(self, name: str) -> Optional[str]:
        for key, value in self._pairs:
            if key == name:
                return value
        return None

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._pairs)


@dataclass(frozen=True)
class OAuthMessage:
    """
    A signed launch request as seen by the signature primitives.

    ``params`` is what goes into the signature base string.
    """

    http_method: str
    uri: str
    parameters: Tuple[Tuple[str, str], ...]

    @property
    def params(self) -> List[Tuple[str, str]]:
        """
        Parameters covered by the signature.

        A ``realm`` sent in the Authorization header is already left out by
        ``build_message``; a ``realm`` form field is signed like any other.
        """
        return [(k, v) for k, v in self.parameters if k != SIGNATURE_PARAMETER]

    @property
    def consumer_key(self) -> str:
        key = self.get_parameter(CONSUMER_KEY_PARAMETER)
        if key is None:
            raise SignatureError(
                PARAMETER_ABSENT,
                f"Missing required parameter: {CONSUMER_KEY_PARAMETER}",
                {"oauth_parameters_absent": CONSUMER_KEY_PARAMETER},
            )
        return key

    def get_parameter(self, name: str) -> Optional[str]:
        for key, value in self.parameters:
            if key == name:
                return value
        return None


@dataclass(frozen=True)
class OAuthAccessor:
    """Credential used to check a launch signature."""

    consumer_key: str
    consumer_secret: str = ""
    rsa_public_key: Optional[str] = None

    def __repr__(self) -> str:
        return f"OAuthAccessor(consumer_key={self.consumer_key!r})"

    @classmethod
    def for_message(cls,
                    message: OAuthMessage,
                    consumer_secret: str,
                    rsa_public_key: Optional[str] = None) -> OAuthAccessor:
        """Pair the message's consumer key with the shared secret."""
        return cls(message.consumer_key, consumer_secret or "", rsa_public_key)


def build_message(source: ParameterSource, url: str) -> OAuthMessage:
    """
    Assemble the signed message for a launch.

    Parameters come from the source plus any OAuth parameters sent in an
    ``Authorization: OAuth ...`` header. The query string of ``url`` is not
    merged in; sources already carry query and body parameters.

    Args:
        source: Parameter source of the incoming request
        url: Absolute URL the consumer signed

    Returns:
        OAuthMessage instance
    """
    parameters = list(source.items())
    headers = getattr(source, "headers", None) or {}
    authorization = next(
        (value for name, value in headers.items() if name.lower() == "authorization"), ""
    )
    if authorization[:len(_OAUTH_AUTH_SCHEME)].lower() == _OAUTH_AUTH_SCHEME:
        header_parameters = signature.collect_parameters(
            headers={"Authorization": authorization}, exclude_oauth_signature=False
        )
        logger.debug("Read %d OAuth parameters from the Authorization header", len(header_parameters))
        parameters.extend(header_parameters)
    return OAuthMessage(
        http_method=getattr(source, "http_method", "POST").upper(),
        uri=url,
        parameters=tuple(parameters),
    )


def base_string(message: OAuthMessage) -> str:
    """
    Compute the RFC 5849 signature base string of a message.

    Raises:
        MalformedURLError: if the message URI is not an absolute http(s) URI
    """
    if not isinstance(message.uri, str):
        raise MalformedURLError("Launch URL must be a string", {"url": message.uri})
    try:
        parts = urlsplit(message.uri)
        if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
            raise ValueError("an absolute http(s) URL is required")
        base_uri = signature.base_string_uri(message.uri)
    except ValueError as e:
        raise MalformedURLError(f"Invalid launch URL {message.uri!r}: {e}", {"url": message.uri}) from e
    normalized = signature.normalize_parameters(message.params)
    return signature.signature_base_string(message.http_method, base_uri, normalized)


__all__ = [
    "ParameterSource",
    "FormParameterSource",
    "OAuthMessage",
    "OAuthAccessor",
    "build_message",
    "base_string",
]
