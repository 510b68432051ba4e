import time

import pytest
from oauthlib.oauth1 import SIGNATURE_HMAC_SHA256, SIGNATURE_RSA

from ltilaunch.config import HMAC_SHA1, PLAINTEXT, build_settings
from ltilaunch.oauth.message import FormParameterSource, OAuthAccessor, base_string, build_message
from ltilaunch.oauth.validator import OAuthSignatureValidator
from ltilaunch.verification.basic import (
    LaunchVerifier, validate_message, verify_launch, verify_parameters
)
from ltilaunch.verification.errors import (
    CONSUMER_KEY_UNKNOWN, PARAMETER_REJECTED, SIGNATURE_INVALID,
    SIGNATURE_METHOD_REJECTED, SignatureError
)
from ltilaunch.verification.result import FailureCause, LaunchError

LAUNCH_URL = "https://example.com/lti-launch"


def _tampered(source, name, value):
    return FormParameterSource(
        [(key, value if key == name else original) for key, original in source.items()]
    )


def _validator(**settings):
    return OAuthSignatureValidator(build_settings(settings, environ={}))


def test_signed_launch_verifies(sign_launch, launch_params):
    source = sign_launch(launch_params, secret="secret")

    result = validate_message(source, LAUNCH_URL, "secret")

    assert result.success is True
    assert result.error is None
    assert result.launch_result.user.identifier == "pgray"
    assert result.launch_result.user.roles == ("instructor", "teacher", "administrator")
    assert result.launch_result.launch_presentation_return_url == "http://example.com/return"


def test_empty_secret_is_a_valid_signing_key(sign_launch, launch_params):
    source = sign_launch(launch_params, secret="")

    assert validate_message(source, LAUNCH_URL, "").success is True


def test_wrong_secret_is_bad_request(sign_launch, launch_params):
    source = sign_launch(launch_params, secret="secret")

    result = validate_message(source, LAUNCH_URL, "other-secret")

    assert result.success is False
    assert result.error == LaunchError.BAD_REQUEST
    assert result.cause == FailureCause.OAUTH_PROTOCOL
    assert result.launch_result is None


def test_tampered_parameter_is_bad_request(sign_launch, launch_params):
    source = _tampered(sign_launch(launch_params), "user_id", "someone-else")

    result = validate_message(source, LAUNCH_URL, "secret")

    assert result.error == LaunchError.BAD_REQUEST


def test_different_launch_url_is_bad_request(sign_launch, launch_params):
    source = sign_launch(launch_params)

    result = validate_message(source, "https://example.com/other-launch", "secret")

    assert result.error == LaunchError.BAD_REQUEST


def test_authorization_header_launch_verifies(sign_launch, launch_params):
    source = sign_launch(launch_params, in_header=True)

    assert source.get_parameter("oauth_signature") is None
    assert validate_message(source, LAUNCH_URL, "secret").success is True


def test_hmac_sha256_launch_verifies(sign_launch, launch_params):
    source = sign_launch(launch_params, signature_method=SIGNATURE_HMAC_SHA256)

    assert validate_message(source, LAUNCH_URL, "secret").success is True


def test_verify_parameters_accepts_plain_mapping(sign_launch, launch_params):
    parameters = dict(sign_launch(launch_params).items())

    result = verify_parameters(parameters, LAUNCH_URL, "secret")

    assert result.success is True
    assert result.launch_result.context_id == "9876"


def test_body_realm_field_is_signed(sign_launch, launch_params):
    source = sign_launch(dict(launch_params, realm="course-realm"))

    message = build_message(source, LAUNCH_URL)

    assert ("realm", "course-realm") in message.params
    assert "realm%3Dcourse-realm" in base_string(message)
    assert validate_message(source, LAUNCH_URL, "secret").success is True


def test_stale_timestamp_is_refused(sign_launch, launch_params):
    message = build_message(sign_launch(launch_params, timestamp=int(time.time()) - 3600), LAUNCH_URL)

    with pytest.raises(SignatureError) as exc_info:
        _validator().validate(message, OAuthAccessor.for_message(message, "secret"))

    assert exc_info.value.problem == PARAMETER_REJECTED


def test_timestamp_within_tolerance_is_accepted(sign_launch, launch_params):
    message = build_message(sign_launch(launch_params, timestamp=int(time.time()) - 120), LAUNCH_URL)

    _validator().validate(message, OAuthAccessor.for_message(message, "secret"))


def test_tolerance_comes_from_settings(sign_launch, launch_params):
    message = build_message(sign_launch(launch_params, timestamp=int(time.time()) - 120), LAUNCH_URL)

    with pytest.raises(SignatureError) as exc_info:
        _validator(timestamp_tolerance_seconds=60).validate(
            message, OAuthAccessor.for_message(message, "secret")
        )

    assert exc_info.value.problem == PARAMETER_REJECTED


def test_signature_mismatch_problem(sign_launch, launch_params):
    message = build_message(sign_launch(launch_params), LAUNCH_URL)

    with pytest.raises(SignatureError) as exc_info:
        _validator().validate(message, OAuthAccessor.for_message(message, "not-the-secret"))

    assert exc_info.value.problem == SIGNATURE_INVALID
    assert exc_info.value.context == {"oauth_consumer_key": "consumer-key"}


def test_credential_for_another_consumer_is_rejected(sign_launch, launch_params):
    message = build_message(sign_launch(launch_params), LAUNCH_URL)

    with pytest.raises(SignatureError) as exc_info:
        _validator().validate(message, OAuthAccessor("other-key", "secret"))

    assert exc_info.value.problem == CONSUMER_KEY_UNKNOWN


def test_unsupported_oauth_version_is_rejected(sign_launch, launch_params):
    source = _tampered(sign_launch(launch_params), "oauth_version", "2.0")
    message = build_message(source, LAUNCH_URL)

    with pytest.raises(SignatureError) as exc_info:
        _validator().validate(message, OAuthAccessor.for_message(message, "secret"))

    assert exc_info.value.problem == PARAMETER_REJECTED
    assert "version" in str(exc_info.value).lower()


def test_disallowed_signature_method_is_rejected(sign_launch, launch_params):
    message = build_message(sign_launch(launch_params), LAUNCH_URL)

    with pytest.raises(SignatureError) as exc_info:
        _validator(signature_methods=[PLAINTEXT]).validate(
            message, OAuthAccessor.for_message(message, "secret")
        )

    assert exc_info.value.problem == SIGNATURE_METHOD_REJECTED


def test_missing_nonce_is_rejected(sign_launch, launch_params):
    source = sign_launch(launch_params)
    message = build_message(
        FormParameterSource([(k, v) for k, v in source.items() if k != "oauth_nonce"]), LAUNCH_URL
    )

    with pytest.raises(SignatureError) as exc_info:
        _validator().validate(message, OAuthAccessor.for_message(message, "secret"))

    assert exc_info.value.problem == PARAMETER_REJECTED


def test_duplicated_oauth_parameter_is_rejected(sign_launch, launch_params):
    source = sign_launch(launch_params)
    message = build_message(
        FormParameterSource(list(source.items()) + [("oauth_nonce", "replayed")]), LAUNCH_URL
    )

    with pytest.raises(SignatureError) as exc_info:
        _validator().validate(message, OAuthAccessor.for_message(message, "secret"))

    assert exc_info.value.problem == PARAMETER_REJECTED


def test_plaintext_launch_when_enabled():
    source = FormParameterSource({
        "oauth_consumer_key": "key",
        "oauth_signature_method": "PLAINTEXT",
        "oauth_signature": "secret&",
        "oauth_timestamp": str(int(time.time())),
        "oauth_nonce": "8c0f1e7a5d",
        "user_id": "pgray",
    })
    message = build_message(source, LAUNCH_URL)
    accessor = OAuthAccessor.for_message(message, "secret")

    _validator(signature_methods=[HMAC_SHA1, PLAINTEXT]).validate(message, accessor)

    with pytest.raises(SignatureError):
        _validator().validate(message, accessor)


def test_rsa_sha1_launch_with_configured_public_key(sign_launch, launch_params, rsa_key_pair):
    private_pem, public_pem = rsa_key_pair
    source = sign_launch(launch_params, signature_method=SIGNATURE_RSA, rsa_key=private_pem)
    settings = build_settings({
        "signature_methods": ["HMAC-SHA1", "RSA-SHA1"],
        "rsa_public_keys": {"consumer-key": public_pem},
    }, environ={})

    result = verify_launch(source, LAUNCH_URL, settings)

    assert result.success is True
    assert result.launch_result.resource_link_id == "12345"


def test_rsa_sha1_without_public_key_is_bad_request(sign_launch, launch_params, rsa_key_pair):
    private_pem, _ = rsa_key_pair
    source = sign_launch(launch_params, signature_method=SIGNATURE_RSA, rsa_key=private_pem)
    settings = build_settings({"signature_methods": ["RSA-SHA1"]}, environ={})

    result = LaunchVerifier(settings).validate(source, LAUNCH_URL, "secret")

    assert result.error == LaunchError.BAD_REQUEST
    assert result.cause == FailureCause.OAUTH_PROTOCOL


def test_verify_launch_resolves_consumer_secret(sign_launch, launch_params):
    source = sign_launch(launch_params, secret="configured-secret")
    settings = build_settings({"consumers": {"consumer-key": "configured-secret"}}, environ={})

    result = verify_launch(source, LAUNCH_URL, settings)

    assert result.success is True


def test_verify_launch_rejects_unknown_consumer(sign_launch, launch_params):
    source = sign_launch(launch_params, consumer_key="stranger")
    settings = build_settings({"consumers": {"consumer-key": "secret"}}, environ={})

    result = verify_launch(source, LAUNCH_URL, settings)

    assert result.success is False
    assert result.error == LaunchError.BAD_REQUEST
    assert result.cause == FailureCause.OAUTH_PROTOCOL
    assert "stranger" in result.message

