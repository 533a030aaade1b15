"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

import hmac
from hashlib import sha256

from .exceptions import CryptoBackendException

EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def sha256_digest(value: str | bytes) -> bytes:
    try:
        return sha256(_to_bytes(value)).digest()
    except ValueError as e:
        # Restricted OpenSSL builds may refuse the digest outright.
        raise CryptoBackendException(f"SHA-256 is unavailable: {e}") from e


def sha256_hex(value: str | bytes) -> str:
    return sha256_digest(value).hex()


def hmac_sha256(key: bytes, value: str | bytes) -> bytes:
    try:
        return hmac.new(key=key, msg=_to_bytes(value), digestmod=sha256).digest()
    except ValueError as e:
        raise CryptoBackendException(f"HMAC-SHA256 is unavailable: {e}") from e


def derive_signing_key(
    *, secret_key: str, date: str, region: str, service: str
) -> bytes:
    """Derive the SigV4 signing key for a credential scope.

    In SigV4, a signing key is created that is scoped to a specific region and
    service. The date, region, service and resulting signing key are individually
    hashed, then the composite hash is used to sign the string to sign.

    DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    """
    k_date = hmac_sha256(f"AWS4{secret_key}".encode(), date[0:8])
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, "aws4_request")
