"""
Basic LTI Launch Verification

Entry points for verifying Basic LTI 1.x launch requests signed with
one-legged OAuth 1.0a. Verification runs as a strict sequence of steps,
each returning a ``Result``; the first failed step ends the run and is
reported as ``LaunchError.BAD_REQUEST``. The public functions never raise.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple, TypeVar
from urllib.parse import urlsplit, urlunsplit

from ltilaunch.config import VerifierSettings
from ltilaunch.launch.records import extract_launch_result
from ltilaunch.oauth.message import (
    FormParameterSource, OAuthAccessor, OAuthMessage,
    ParameterSource, Parameters, base_string, build_message
)
from ltilaunch.oauth.validator import OAuthSignatureValidator, SignatureValidator
from ltilaunch.verification.errors import (
    CONSUMER_KEY_UNKNOWN, MalformedURLError, SignatureError, classify,
    launch_error_for
)
from ltilaunch.verification.result import LtiVerificationResult, Result, StepFailure

logger = logging.getLogger(__name__)

T = TypeVar('T')

MessageBuilder = Callable[[ParameterSource, str], OAuthMessage]
BaseStringBuilder = Callable[[OAuthMessage], str]
ValidatorFactory = Callable[[], SignatureValidator]


def _attempt(stage: str, step: Callable[..., T], *args: Any) -> Result[T, StepFailure]:
    """Run one verification step, capturing any exception as a failed result."""
    try:
        return Result.success(step(*args))
    except Exception as e:
        return Result.failure(StepFailure(stage, classify(e), e))


class LaunchVerifier:
    """
    Verifies launch requests against a shared secret.

    The verifier holds no per-request state: every call builds its own
    message, credential and validator, so one instance can serve
    concurrent requests.
    """

    def __init__(self,
                 settings: Optional[VerifierSettings] = None,
                 message_builder: MessageBuilder = build_message,
                 base_string_builder: BaseStringBuilder = base_string,
                 validator_factory: Optional[ValidatorFactory] = None):
        self._settings = settings or VerifierSettings()
        self._message_builder = message_builder
        self._base_string_builder = base_string_builder
        self._validator_factory = validator_factory or (
            lambda: OAuthSignatureValidator(self._settings)
        )

    def validate(self,
                 source: ParameterSource,
                 url: str,
                 secret: str,
                 rsa_public_key: Optional[str] = None) -> LtiVerificationResult:
        """
        Verify a launch request.

        Args:
            source: Parameter source of the incoming request
            url: Absolute launch URL the consumer signed
            secret: Shared secret for the consumer key; may be empty
            rsa_public_key: PEM public key, only used for RSA-SHA1 launches

        Returns:
            LtiVerificationResult carrying either the launch record or BAD_REQUEST
        """
        message_result = _attempt("build message", self._message_builder, source, url)
        if message_result.is_failure:
            return self._reject(message_result.error, url)
        message = message_result.get_or_raise()

        base_result = _attempt("build base string", self._base_string_builder, message)
        if base_result.is_failure:
            return self._reject(base_result.error, url)
        logger.debug("Signature base string for %s: %s", url, base_result.get_or_raise())

        accessor_result = _attempt(
            "read consumer key", OAuthAccessor.for_message, message, secret, rsa_public_key
        )
        if accessor_result.is_failure:
            return self._reject(accessor_result.error, url)
        accessor = accessor_result.get_or_raise()

        validation_result = _attempt("validate signature", self._run_validator, message, accessor)
        if validation_result.is_failure:
            return self._reject(validation_result.error, url)

        record_result = _attempt("extract launch", extract_launch_result, source)
        if record_result.is_failure:
            return self._reject(record_result.error, url)

        logger.info("Verified LTI launch from consumer %s", accessor.consumer_key)
        return LtiVerificationResult.accepted(record_result.get_or_raise())

    def validate_for_consumer(self, source: ParameterSource, url: str) -> LtiVerificationResult:
        """Verify a launch using the secret configured for its consumer key."""
        lookup_result = _attempt("look up consumer", self._consumer_credentials, source, url)
        if lookup_result.is_failure:
            return self._reject(lookup_result.error, url)
        secret, rsa_public_key = lookup_result.get_or_raise()
        return self.validate(source, url, secret, rsa_public_key)

    def _consumer_credentials(self, source: ParameterSource, url: str) -> Tuple[str, Optional[str]]:
        consumer_key = self._message_builder(source, url).consumer_key
        secret = self._settings.secret_for(consumer_key)
        rsa_public_key = self._settings.rsa_public_key_for(consumer_key)
        if secret is None and rsa_public_key is None:
            raise SignatureError(
                CONSUMER_KEY_UNKNOWN,
                f"Unknown consumer key: {consumer_key}",
                {"oauth_consumer_key": consumer_key},
            )
        return secret or "", rsa_public_key

    def _run_validator(self, message: OAuthMessage, accessor: OAuthAccessor) -> None:
        self._validator_factory().validate(message, accessor)

    @staticmethod
    def _reject(failure: StepFailure, url: str) -> LtiVerificationResult:
        logger.warning(
            "Rejected LTI launch for %s: %s (cause: %s)", url, failure.description, failure.cause.value
        )
        return LtiVerificationResult.rejected(
            launch_error_for(failure.cause), failure.cause, failure.description
        )


_default_verifier = LaunchVerifier()


def validate_message(source: ParameterSource, url: str, secret: str) -> LtiVerificationResult:
    """
    Verify a launch request signed with ``secret``.

    Args:
        source: Parameter source of the incoming request
        url: Absolute launch URL the consumer signed
        secret: OAuth consumer secret; an empty secret is valid

    Returns:
        LtiVerificationResult; never raises
    """
    return _default_verifier.validate(source, url, secret)


def verify_parameters(parameters: Parameters,
                      url: str,
                      secret: str,
                      method: str = "POST") -> LtiVerificationResult:
    """Verify decoded launch parameters without a request object."""
    try:
        source = FormParameterSource(parameters, http_method=method)
    except Exception as e:
        return LaunchVerifier._reject(StepFailure("read parameters", classify(e), e), url)
    return _default_verifier.validate(source, url, secret)


def verify_launch(source: ParameterSource,
                  url: str,
                  settings: VerifierSettings) -> LtiVerificationResult:
    """Verify a launch, resolving the shared secret from ``settings.consumers``."""
    return LaunchVerifier(settings).validate_for_consumer(source, url)


def get_real_path(url: str, new_base: str) -> str:
    """
    Move a URL's path onto another scheme and host.

    The path of ``new_base`` is ignored and the result always ends with a
    slash, e.g. ``get_real_path("http://localhost/path/blah/", "https://right.com")``
    gives ``"https://right.com/path/blah/"``.

    Raises:
        MalformedURLError: if ``new_base`` has no scheme or host
    """
    base = urlsplit(new_base)
    if not base.scheme or not base.netloc:
        raise MalformedURLError(f"Base URL needs a scheme and host: {new_base}", {"url": new_base})
    path = urlsplit(url).path or "/"
    if not path.endswith("/"):
        path += "/"
    return urlunsplit((base.scheme, base.netloc, path, "", ""))


__all__ = [
    "LaunchVerifier",
    "validate_message",
    "verify_parameters",
    "verify_launch",
    "get_real_path",
]
