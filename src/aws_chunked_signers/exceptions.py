"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""


class AWSSDKWarning(UserWarning): ...


class BaseAWSSDKException(Exception):
    """Top-level exception to capture SDK-related errors."""

    ...


class InvalidArgumentException(BaseAWSSDKException, ValueError):
    """A supplied argument can't be used for signing or encoding."""

    ...


class MissingExpectedParameterException(BaseAWSSDKException, ValueError):
    """Some APIs require specific signing properties to be present."""

    ...


class MissingPayloadHashException(MissingExpectedParameterException):
    """Header signing requires the `X-Amz-Content-SHA256` field."""

    ...


class EncodingInvariantException(BaseAWSSDKException, RuntimeError):
    """A chunk-encoded stream was used in a way it can't recover from."""

    ...


class CryptoBackendException(BaseAWSSDKException, RuntimeError):
    """The hashing backend rejected an operation."""

    ...
