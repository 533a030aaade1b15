"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

import datetime
import io
import logging
import re
import warnings
from collections.abc import Callable, Iterable
from copy import deepcopy
from dataclasses import dataclass
from hashlib import sha256
from typing import Required, TypedDict
from urllib.parse import quote, unquote_to_bytes

from ._crypto import EMPTY_SHA256_HASH, derive_signing_key, hmac_sha256, sha256_hex
from ._http import URI, AWSRequest, Field
from ._identity import AWSCredentialIdentity
from ._io import is_seekable
from ._scope import CredentialScope, format_timestamp, parse_timestamp
from .exceptions import (
    AWSSDKWarning,
    InvalidArgumentException,
    MissingExpectedParameterException,
    MissingPayloadHashException,
)
from .interfaces.identity import AWSCredentialsIdentity as _AWSCredentialsIdentity
from .interfaces.io import ByteStream

logger = logging.getLogger(__name__)

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = (
    "authorization",
    "connection",
    "expect",
    "user-agent",
    "x-amzn-trace-id",
)
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

SIGV4_ALGORITHM: str = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD: str = "UNSIGNED-PAYLOAD"
STREAMING_SIGNED_PAYLOAD: str = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
STREAMING_SIGNED_PAYLOAD_TRAILER: str = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD-TRAILER"
CONTENT_SHA256_FIELD: str = "X-Amz-Content-SHA256"

DEFAULT_PRESIGN_EXPIRES: int = 3600
MAX_PRESIGN_EXPIRES: int = 604800

_READ_SIZE = 64 * 1024
_FIELD_WHITESPACE_RE = re.compile(r"[ \t]+")
_SLASH_RUN_RE = re.compile(r"/{2,}")


class SigV4SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: Required[str]
    date: str
    expires: int
    payload_signing_enabled: bool
    uri_normalize_path: bool
    uri_double_encode: bool


@dataclass(frozen=True, kw_only=True)
class SigV4SigningResult:
    """The outcome of signing a request.

    ``signature`` seeds any chunk signatures computed for a streaming body.
    """

    request: AWSRequest
    signature: str
    signed_headers: list[str]
    scope: CredentialScope


class SigV4Signer:
    """
    Request signer for applying the AWS Signature Version 4 algorithm.

    Signatures can be attached as the ``Authorization`` field, as query
    parameters, or as a presigned URL with an expiration. The supplied request is
    never modified, each mode returns a signed copy.
    """

    def sign(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
    ) -> AWSRequest:
        """Sign a copy of ``request`` with an ``Authorization`` field and return it.

        :raises MissingPayloadHashException: if ``X-Amz-Content-SHA256`` isn't set.
        """
        return self.sign_header(
            signing_properties=signing_properties,
            request=request,
            identity=identity,
        ).request

    def sign_header(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
    ) -> SigV4SigningResult:
        """Sign a copy of ``request`` and attach the signature as request fields.

        The ``X-Amz-Date``, ``X-Amz-Security-Token`` (for session credentials)
        and ``Authorization`` fields are applied to the copy.

        :param signing_properties: SigV4SigningProperties to define signing
            primitives such as the target service, region, and date.
        :param request: An AWSRequest carrying an ``X-Amz-Content-SHA256`` field.
        :param identity: A set of credentials representing an AWS Identity.
        :raises MissingPayloadHashException: if ``X-Amz-Content-SHA256`` isn't set.
        """
        # Copy and prepopulate any missing values in the
        # supplied request and signing properties.
        self._validate_identity(identity=identity)
        new_signing_properties = self._normalize_signing_properties(
            signing_properties=signing_properties
        )
        if CONTENT_SHA256_FIELD not in request.fields:
            raise MissingPayloadHashException(
                f"Content hash must be present in the '{CONTENT_SHA256_FIELD}' "
                "field for header signing."
            )
        new_request = self._generate_new_request(request=request)
        self._apply_host_field(request=new_request)
        new_request.fields.set_field(
            Field(name="X-Amz-Date", values=[new_signing_properties["date"]])
        )
        if identity.session_token is not None:
            new_request.fields.set_field(
                Field(name="X-Amz-Security-Token", values=[identity.session_token])
            )

        logger.debug("Calculating signature using SigV4 header auth.")
        signature = self._sign_request(
            signing_properties=new_signing_properties,
            request=new_request,
            secret_key=identity.secret_access_key,
        )

        signing_fields = self._normalize_signing_fields(request=new_request)
        credential_scope = self._scope(signing_properties=new_signing_properties)
        credential = f"{identity.access_key_id}/{credential_scope}"
        authorization = self.generate_authorization_field(
            credential=credential,
            signed_headers=list(signing_fields.keys()),
            signature=signature,
        )
        new_request.fields.set_field(authorization)

        return SigV4SigningResult(
            request=new_request,
            signature=signature,
            signed_headers=list(signing_fields.keys()),
            scope=self._credential_scope(signing_properties=new_signing_properties),
        )

    def sign_query(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
    ) -> SigV4SigningResult:
        """Sign a copy of ``request`` and attach the signature as query parameters.

        ``X-Amz-Date`` is sent as a query parameter rather than a field, so it
        isn't part of the signed headers.
        """
        logger.debug("Calculating signature using SigV4 query auth.")
        return self._sign_query(
            signing_properties=signing_properties,
            request=request,
            identity=identity,
            expires=None,
        )

    def sign_presigned(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
        expires: int | None = None,
    ) -> SigV4SigningResult:
        """Generate a presigned copy of ``request`` valid for ``expires`` seconds.

        ``expires`` falls back to the ``expires`` signing property, then to one
        hour. The ``X-Amz-Content-SHA256`` field is never signed since a presigned
        URL is usually handed to a client that won't send it, but its value is
        still used as the payload hash when present.

        :raises InvalidArgumentException: if ``expires`` isn't between 0 and
            604800 seconds.
        """
        if expires is None:
            expires = signing_properties.get("expires", DEFAULT_PRESIGN_EXPIRES)
        if (
            not isinstance(expires, int)
            or isinstance(expires, bool)
            or not 0 <= expires <= MAX_PRESIGN_EXPIRES
        ):
            raise InvalidArgumentException(
                f"Presigned expiration must be a whole number of seconds between 0 "
                f"and {MAX_PRESIGN_EXPIRES}, received {expires!r}."
            )
        logger.debug("Calculating signature using SigV4 presigned auth.")
        return self._sign_query(
            signing_properties=signing_properties,
            request=request,
            identity=identity,
            expires=expires,
        )

    def _sign_query(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
        expires: int | None,
    ) -> SigV4SigningResult:
        self._validate_identity(identity=identity)
        new_signing_properties = self._normalize_signing_properties(
            signing_properties=signing_properties
        )
        new_request = self._generate_new_request(request=request)
        self._apply_host_field(request=new_request)

        unsigned_fields: tuple[str, ...] = ()
        if expires is not None:
            unsigned_fields = (CONTENT_SHA256_FIELD.lower(),)
        signing_fields = self._normalize_signing_fields(
            request=new_request, unsigned_fields=unsigned_fields
        )
        credential_scope = self._scope(signing_properties=new_signing_properties)
        auth_params = [
            ("X-Amz-Algorithm", SIGV4_ALGORITHM),
            ("X-Amz-Date", new_signing_properties["date"]),
            ("X-Amz-Credential", f"{identity.access_key_id}/{credential_scope}"),
            ("X-Amz-SignedHeaders", ";".join(signing_fields)),
        ]
        if expires is not None:
            auth_params.append(("X-Amz-Expires", str(expires)))
        if identity.session_token is not None:
            auth_params.append(("X-Amz-Security-Token", identity.session_token))
        new_request.destination = new_request.destination.with_query_params(
            auth_params
        )

        signature = self._sign_request(
            signing_properties=new_signing_properties,
            request=new_request,
            secret_key=identity.secret_access_key,
            unsigned_fields=unsigned_fields,
        )
        new_request.destination = new_request.destination.with_query_params(
            [("X-Amz-Signature", signature)]
        )

        return SigV4SigningResult(
            request=new_request,
            signature=signature,
            signed_headers=list(signing_fields.keys()),
            scope=self._credential_scope(signing_properties=new_signing_properties),
        )

    def _sign_request(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        secret_key: str,
        unsigned_fields: Iterable[str] = (),
    ) -> str:
        canonical_request = self.canonical_request(
            signing_properties=signing_properties,
            request=request,
            unsigned_fields=unsigned_fields,
        )
        logger.debug("CanonicalRequest:\n%s", canonical_request)
        string_to_sign = self.string_to_sign(
            canonical_request=canonical_request,
            signing_properties=signing_properties,
        )
        logger.debug("StringToSign:\n%s", string_to_sign)
        signature = self._signature(
            string_to_sign=string_to_sign,
            secret_key=secret_key,
            signing_properties=signing_properties,
        )
        logger.debug("Signature:\n%s", signature)
        return signature

    def generate_authorization_field(
        self, *, credential: str, signed_headers: list[str], signature: str
    ) -> Field:
        """Generate the `Authorization` field.

        :param credential:
            Credential scope string for generating the Authorization header.
            Defined as:
                <access_key>/<date>/<region>/<service>/<request_type>
        :param signed_headers:
            A list of the field names used in signing.
        :param signature:
            Final hash of the SigV4 signing algorithm generated from the
            canonical request and string to sign.
        """
        signed_headers_str = ";".join(signed_headers)
        auth_str = (
            f"{SIGV4_ALGORITHM} Credential={credential}, "
            f"SignedHeaders={signed_headers_str}, Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def _signature(
        self,
        *,
        string_to_sign: str,
        secret_key: str,
        signing_properties: SigV4SigningProperties,
    ) -> str:
        """Sign the string to sign with a key derived for the credential scope."""
        assert "date" in signing_properties
        k_signing = derive_signing_key(
            secret_key=secret_key,
            date=signing_properties["date"],
            region=signing_properties["region"],
            service=signing_properties["service"],
        )
        return hmac_sha256(k_signing, string_to_sign).hex()

    def _validate_identity(self, *, identity: AWSCredentialIdentity) -> None:
        """Perform runtime and expiration checks before attempting signing."""
        if not isinstance(identity, _AWSCredentialsIdentity):
            raise ValueError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}."
            )
        elif identity.is_expired:
            raise ValueError(
                f"Provided identity expired at {identity.expiration}. Please "
                "refresh the credentials or update the expiration parameter."
            )

    def _normalize_signing_properties(
        self, *, signing_properties: SigV4SigningProperties
    ) -> SigV4SigningProperties:
        for required in ("region", "service"):
            if not signing_properties.get(required):
                raise MissingExpectedParameterException(
                    f"Signing properties must include a non-empty '{required}'."
                )
        # Create copy of signing properties to avoid mutating the original
        new_signing_properties = SigV4SigningProperties(**signing_properties)
        new_signing_properties["date"] = self._resolve_signing_date(
            date=new_signing_properties.get("date")
        )
        return new_signing_properties

    def _generate_new_request(self, *, request: AWSRequest) -> AWSRequest:
        if not request.destination.host:
            raise InvalidArgumentException(
                "Cannot sign a request without a destination host."
            )
        # Streams can't be duplicated, the copy shares the original body.
        return AWSRequest(
            destination=deepcopy(request.destination),
            method=request.method,
            body=request.body,
            fields=deepcopy(request.fields),
        )

    def _resolve_signing_date(self, *, date: str | None) -> str:
        if date is None:
            date_obj = datetime.datetime.now(datetime.timezone.utc)
            return format_timestamp(date_obj)
        # Validates the format before it's used in the scope.
        parse_timestamp(date)
        return date

    def _credential_scope(
        self, *, signing_properties: SigV4SigningProperties
    ) -> CredentialScope:
        assert "date" in signing_properties
        return CredentialScope.from_timestamp(
            region=signing_properties["region"],
            service=signing_properties["service"],
            timestamp=signing_properties["date"],
        )

    def canonical_request(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        unsigned_fields: Iterable[str] = (),
    ) -> str:
        """The canonical request is a standardized string laying out the components
        used in the SigV4 signing algorithm. This is useful to quickly compare inputs
        to find signature mismatches and unintended variances.

        SigV4 defines the canonical request as:
            <HTTPMethod>\\n
            <CanonicalURI>\\n
            <CanonicalQueryString>\\n
            <CanonicalHeaders>\\n
            <SignedHeaders>\\n
            <HashedPayload>

        :param signing_properties:
            SigV4SigningProperties to define signing primitives such as
            the target service, region, and date.
        :param request:
            An AWSRequest to use for generating a SigV4 signature.
        :param unsigned_fields:
            Lowercase field names to leave out of the signature in addition to
            ``HEADERS_EXCLUDED_FROM_SIGNING``.
        """
        canonical_payload = self._format_canonical_payload(
            request=request, signing_properties=signing_properties
        )
        canonical_path = self._format_canonical_path(
            path=request.destination.path, signing_properties=signing_properties
        )
        canonical_query = self._format_canonical_query(uri=request.destination)
        normalized_fields = self._normalize_signing_fields(
            request=request, unsigned_fields=unsigned_fields
        )
        canonical_fields = self._format_canonical_fields(fields=normalized_fields)
        return (
            f"{request.method.upper()}\n"
            f"{canonical_path}\n"
            f"{canonical_query}\n"
            f"{canonical_fields}\n"
            f"{';'.join(normalized_fields)}\n"
            f"{canonical_payload}"
        )

    def string_to_sign(
        self,
        *,
        canonical_request: str,
        signing_properties: SigV4SigningProperties,
    ) -> str:
        """The string to sign concatenates the signing algorithm, the signing
        timestamp, the credential scope, and a hash of the canonical request.

            Algorithm \\n
            RequestDateTime \\n
            CredentialScope  \\n
            HashedCanonicalRequest
        """
        date = signing_properties.get("date")
        if date is None:
            raise MissingExpectedParameterException(
                "Cannot generate string_to_sign without a valid date "
                f"in your signing_properties. Current value: {date}"
            )
        return (
            f"{SIGV4_ALGORITHM}\n"
            f"{date}\n"
            f"{self._scope(signing_properties=signing_properties)}\n"
            f"{sha256_hex(canonical_request)}"
        )

    def _scope(self, signing_properties: SigV4SigningProperties) -> str:
        return self._credential_scope(signing_properties=signing_properties).scope()

    def _format_canonical_path(
        self, *, path: str | None, signing_properties: SigV4SigningProperties
    ) -> str:
        if not path:
            path = "/"
        if signing_properties.get("uri_normalize_path", True):
            path = _remove_dot_segments(path) or "/"
        # Paths arrive percent-encoded, existing escapes are kept as they are.
        encoded_path = quote(string=path, safe="/%")
        if signing_properties.get("uri_double_encode", True):
            encoded_path = quote(string=encoded_path, safe="/")
        return encoded_path

    def _format_canonical_query(self, *, uri: URI) -> str:
        if not uri.query:
            return ""
        # Escapes are decoded to raw bytes so values that aren't UTF-8 survive.
        query_parts: list[tuple[str, str]] = []
        for param in uri.query.split("&"):
            if not param:
                continue
            key, _, value = param.partition("=")
            query_parts.append(
                (
                    quote(string=unquote_to_bytes(key), safe=""),
                    quote(string=unquote_to_bytes(value), safe=""),
                )
            )
        # key-value pairs must be in sorted order for their encoded forms.
        return "&".join(f"{key}={value}" for key, value in sorted(query_parts))

    def _normalize_signing_fields(
        self, *, request: AWSRequest, unsigned_fields: Iterable[str] = ()
    ) -> dict[str, str]:
        excluded = (*HEADERS_EXCLUDED_FROM_SIGNING, *unsigned_fields)
        normalized_fields = {
            field.name.lower(): ",".join(
                _FIELD_WHITESPACE_RE.sub(" ", value.strip()) for value in field.values
            )
            for field in request.fields
            if field.name.lower() not in excluded
        }
        if "host" not in normalized_fields:
            normalized_fields["host"] = self._normalize_host_field(
                uri=request.destination
            )

        return dict(sorted(normalized_fields.items()))

    def _apply_host_field(self, *, request: AWSRequest) -> None:
        if "Host" not in request.fields:
            request.fields.set_field(
                Field(
                    name="Host",
                    values=[self._normalize_host_field(uri=request.destination)],
                )
            )

    def _normalize_host_field(self, *, uri: URI) -> str:
        if uri.port is not None and DEFAULT_PORTS.get(uri.scheme) == uri.port:
            uri_dict = uri.to_dict()
            uri_dict.update({"port": None})
            uri = URI(**uri_dict)
        return uri.host_port

    def _format_canonical_fields(self, *, fields: dict[str, str]) -> str:
        return "".join(f"{key}:{value}\n" for key, value in fields.items())

    def _format_canonical_payload(
        self,
        *,
        request: AWSRequest,
        signing_properties: SigV4SigningProperties,
    ) -> str:
        payload_field = request.fields.get(CONTENT_SHA256_FIELD)
        if payload_field is not None:
            return payload_field.as_string()
        if not self._should_sha256_sign_payload(
            request=request, signing_properties=signing_properties
        ):
            return UNSIGNED_PAYLOAD
        return self._compute_payload_hash(request=request)

    def _should_sha256_sign_payload(
        self,
        *,
        request: AWSRequest,
        signing_properties: SigV4SigningProperties,
    ) -> bool:
        # All insecure connections should be signed
        if request.destination.scheme != "https":
            return True

        return signing_properties.get("payload_signing_enabled", True)

    def _compute_payload_hash(self, *, request: AWSRequest) -> str:
        body = request.body
        if body is None:
            return EMPTY_SHA256_HASH
        if isinstance(body, bytes | bytearray):
            return sha256_hex(bytes(body))

        checksum = sha256()
        if isinstance(body, ByteStream) and is_seekable(body):
            position = body.tell()  # type: ignore[attr-defined]
            while chunk := body.read(_READ_SIZE):
                checksum.update(chunk)
            body.seek(position)  # type: ignore[attr-defined]
            return checksum.hexdigest()

        warnings.warn(
            "The request body can't be rewound and will be buffered in memory "
            "to compute its SHA-256 payload hash.",
            AWSSDKWarning,
        )
        buffer = io.BytesIO()
        if isinstance(body, ByteStream):
            while chunk := body.read(_READ_SIZE):
                buffer.write(chunk)
                checksum.update(chunk)
        else:
            for chunk in body:
                buffer.write(chunk)
                checksum.update(chunk)
        buffer.seek(0)
        request.body = buffer
        return checksum.hexdigest()


class RollingSigner:
    """Signs a sequence of payloads where each signature covers the previous one.

    The signer starts from a seed signature, normally the signature of the request
    that carries the payloads. Every call to :py:meth:`sign` replaces the
    previous signature with the one it returns, so calls must be made in the order
    the payloads are sent.
    """

    def __init__(self, *, signing_key: bytes, seed_signature: str):
        if not seed_signature:
            raise InvalidArgumentException("A rolling signer needs a seed signature.")
        self._signing_key = signing_key
        self._previous_signature = seed_signature

    @property
    def previous_signature(self) -> str:
        return self._previous_signature

    def sign(self, string_to_sign: Callable[[str], str]) -> str:
        """Sign the string built by ``string_to_sign`` from the previous signature.

        :param string_to_sign: Called with the previous signature, returns the
            string to sign for the next payload.
        :returns: The new signature as lowercase hex.
        """
        signature = hmac_sha256(
            self._signing_key, string_to_sign(self._previous_signature)
        ).hex()
        self._previous_signature = signature
        return signature


def _remove_dot_segments(path: str, remove_consecutive_slashes: bool = True) -> str:
    """Removes dot segments from a path per :rfc:`3986#section-5.2.4`.
    Optionally removes consecutive slashes, true by default.
    :param path: The path to modify.
    :param remove_consecutive_slashes: Whether to remove consecutive slashes.
    :returns: The path with dot segments removed.
    """
    output: list[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        elif segment != "..":
            output.append(segment)
        elif output:
            output.pop()
    if path.startswith("/") and (not output or output[0]):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")
    result = "/".join(output)
    if remove_consecutive_slashes:
        result = _SLASH_RUN_RE.sub("/", result)
    return result
