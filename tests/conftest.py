import time
from urllib.parse import urlencode

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from oauthlib.oauth1 import (
    SIGNATURE_HMAC_SHA1, SIGNATURE_TYPE_AUTH_HEADER, SIGNATURE_TYPE_BODY, Client
)

from ltilaunch.oauth.message import FormParameterSource

LAUNCH_URL = "https://example.com/lti-launch"
CONSUMER_KEY = "consumer-key"
FORM_CONTENT_TYPE = {"Content-Type": "application/x-www-form-urlencoded"}


@pytest.fixture
def launch_params():
    return {
        "user_id": "pgray",
        "roles": "instructor, teacher,administrator",
        "lti_version": "lpv1",
        "lti_message_type": "lti",
        "resource_link_id": "12345",
        "context_id": "9876",
        "launch_presentation_return_url": "http://example.com/return",
        "tool_consumer_instance_guid": "instance_id",
    }


@pytest.fixture
def sign_launch():
    """Factory signing launch parameters the way a tool consumer would."""

    def _sign(params, secret="secret", url=LAUNCH_URL, consumer_key=CONSUMER_KEY,
              signature_method=SIGNATURE_HMAC_SHA1, timestamp=None, rsa_key=None,
              in_header=False):
        client = Client(
            consumer_key,
            client_secret=secret,
            signature_method=signature_method,
            signature_type=SIGNATURE_TYPE_AUTH_HEADER if in_header else SIGNATURE_TYPE_BODY,
            rsa_key=rsa_key,
            timestamp=str(timestamp if timestamp is not None else int(time.time())),
        )
        _, headers, body = client.sign(
            url, http_method="POST", body=urlencode(params), headers=dict(FORM_CONTENT_TYPE)
        )
        authorization = {"Authorization": headers["Authorization"]} if in_header else None
        return FormParameterSource.from_body(body, headers=authorization)

    return _sign


@pytest.fixture(scope="session")
def rsa_key_pair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')
    return private_pem, public_pem
