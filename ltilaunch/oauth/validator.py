"""
OAuth 1.0a Signature Validation

One-legged OAuth validation of launch messages. ``SignatureValidator`` is
the seam the verification pipeline depends on; ``OAuthSignatureValidator``
is the default implementation, running oauthlib's ``SignatureOnlyEndpoint``
against a ``RequestValidator`` driven by ``VerifierSettings``.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Optional, Protocol, runtime_checkable
from urllib.parse import urlencode, urlsplit, urlunsplit

from oauthlib.oauth1 import RequestValidator, SignatureOnlyEndpoint
from oauthlib.oauth1.rfc5849.errors import InvalidSignatureMethodError, OAuth1Error

from ltilaunch.config import VerifierSettings
from ltilaunch.oauth.message import OAuthAccessor, OAuthMessage
from ltilaunch.verification.errors import (
    CONSUMER_KEY_UNKNOWN, PARAMETER_REJECTED, SIGNATURE_INVALID,
    SIGNATURE_METHOD_REJECTED, SignatureError
)

logger = logging.getLogger(__name__)

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
_REJECTION_KEY = "parameters"


@runtime_checkable
class SignatureValidator(Protocol):
    """Validates a launch message against a credential, raising on failure."""

    def validate(self, message: OAuthMessage, accessor: OAuthAccessor) -> None:
        ...


class LaunchRequestValidator(RequestValidator):
    """
    oauthlib request validator for a single launch credential.

    Implements the RequestValidator object required by oauthlib for a
    signature-only endpoint. The consumer key and secret come from the
    accessor; accepted methods and the timestamp window from the settings.
    Nonces are not tracked.
    """

    enforce_ssl = False
    dummy_client = "unknown-consumer"
    dummy_secret = ""

    def __init__(self, settings: VerifierSettings, accessor: OAuthAccessor):
        super().__init__()
        self._settings = settings
        self._accessor = accessor

    @property
    def allowed_signature_methods(self) -> FrozenSet[str]:
        return self._settings.signature_methods

    @property
    def timestamp_lifetime(self) -> int:
        return self._settings.timestamp_tolerance_seconds

    def check_client_key(self, client_key: str) -> bool:
        # any non-empty string is OK as a consumer key
        return len(client_key) > 0

    def check_nonce(self, nonce: str) -> bool:
        return len(nonce) > 0

    def validate_client_key(self, client_key, request) -> bool:
        return client_key == self._accessor.consumer_key

    def validate_timestamp_and_nonce(self, client_key, timestamp, nonce, request,
                                     request_token=None, access_token=None) -> bool:
        return True

    def get_client_secret(self, client_key, request) -> str:
        if client_key != self._accessor.consumer_key:
            return self.dummy_secret
        return self._accessor.consumer_secret

    def get_rsa_key(self, client_key, request) -> str:
        if not self._accessor.rsa_public_key:
            raise SignatureError(
                SIGNATURE_METHOD_REJECTED,
                "RSA-SHA1 requires a public key for the consumer",
                {"oauth_consumer_key": client_key},
            )
        return self._accessor.rsa_public_key


class LaunchEndpoint(SignatureOnlyEndpoint):
    """Signature-only endpoint that keeps oauthlib's reason for rejecting a launch."""

    def _check_mandatory_parameters(self, request):
        try:
            super()._check_mandatory_parameters(request)
        except OAuth1Error as e:
            request.validator_log[_REJECTION_KEY] = e
            raise


class OAuthSignatureValidator:
    """
    Default one-legged OAuth 1.0a validator.

    oauthlib checks the required parameters, ``oauth_version``, the
    signature method allow-list, the timestamp window and the signature
    itself. A rejection is raised as ``SignatureError`` with the problem
    that stopped the launch.
    """

    def __init__(self, settings: Optional[VerifierSettings] = None):
        self._settings = settings or VerifierSettings()

    def validate(self, message: OAuthMessage, accessor: OAuthAccessor) -> None:
        """
        Validate the message signature.

        Args:
            message: Signed launch message
            accessor: Consumer credential

        Raises:
            SignatureError: if any check fails
        """
        endpoint = LaunchEndpoint(LaunchRequestValidator(self._settings, accessor))
        # the message already carries every signed parameter, query included
        parts = urlsplit(message.uri)
        valid, request = endpoint.validate_request(
            urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")),
            http_method=message.http_method,
            body=urlencode(message.parameters),
            headers=dict(_FORM_HEADERS),
        )
        if valid:
            return
        rejection = self._rejection(request, accessor)
        logger.debug("oauthlib rejected launch from %s: %s", accessor.consumer_key, rejection.problem)
        raise rejection

    @staticmethod
    def _rejection(request, accessor: OAuthAccessor) -> SignatureError:
        context = {"oauth_consumer_key": accessor.consumer_key}
        if request is None:
            return SignatureError(PARAMETER_REJECTED, "OAuth parameters could not be read", context)

        rejection = request.validator_log.get(_REJECTION_KEY)
        if isinstance(rejection, InvalidSignatureMethodError):
            return SignatureError(SIGNATURE_METHOD_REJECTED, rejection.description, context)
        if rejection is not None:
            return SignatureError(PARAMETER_REJECTED, rejection.description, context)
        if not request.validator_log.get("client", False):
            return SignatureError(CONSUMER_KEY_UNKNOWN, "OAuth consumer key does not match", context)
        return SignatureError(SIGNATURE_INVALID, "OAuth signature does not match", context)


__all__ = [
    "SignatureValidator",
    "LaunchRequestValidator",
    "OAuthSignatureValidator",
]
