"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

import pytest

from aws_chunked_signers import _crypto
from aws_chunked_signers.exceptions import CryptoBackendException

ERROR = ValueError("unsupported digest")


def reject(*args: object, **kwargs: object) -> None:
    raise ERROR


class TestCryptoBackend:
    def test_hmac_failure_is_wrapped(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(_crypto.hmac, "new", reject)

        with pytest.raises(CryptoBackendException, match="HMAC-SHA256") as e:
            _crypto.hmac_sha256(b"key", "value")

        assert e.value.__cause__ is ERROR

    def test_sha256_failure_is_wrapped(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(_crypto, "sha256", reject)

        with pytest.raises(CryptoBackendException, match="SHA-256") as e:
            _crypto.sha256_hex("value")

        assert e.value.__cause__ is ERROR

    def test_signing_key_derivation_surfaces_backend_error(
        self, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setattr(_crypto.hmac, "new", reject)

        with pytest.raises(CryptoBackendException):
            _crypto.derive_signing_key(
                secret_key="secret", date="19700101", region="us-east-1", service="s3"
            )
