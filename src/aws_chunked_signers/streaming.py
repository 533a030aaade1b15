"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0

Signed ``aws-chunked`` payloads, where every chunk carries a signature that
covers the chunk and the signature before it, starting from the signature of the
request itself.

See https://docs.aws.amazon.com/AmazonS3/latest/API/sigv4-streaming.html
"""

import base64
import hashlib
import logging
import zlib
from collections.abc import Iterable, Sequence
from copy import deepcopy

from ._crypto import EMPTY_SHA256_HASH, derive_signing_key, sha256_hex
from ._http import AWSRequest, Field
from ._identity import AWSCredentialIdentity
from ._io import as_byte_stream, remaining_length
from ._scope import CredentialScope
from .chunked import ChunkEncodedStream, ChunkExtension, Trailer
from .exceptions import InvalidArgumentException
from .interfaces.io import ByteStream
from .signers import (
    CONTENT_SHA256_FIELD,
    STREAMING_SIGNED_PAYLOAD,
    STREAMING_SIGNED_PAYLOAD_TRAILER,
    RollingSigner,
    SigV4Signer,
    SigV4SigningProperties,
    SigV4SigningResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = 64 * 1024
CHUNK_SIGNATURE_EXTENSION: bytes = b"chunk-signature"
TRAILER_SIGNATURE: bytes = b"x-amz-trailer-signature"
SIGNATURE_LENGTH: int = 64

_CHECKSUM_DIGEST_SIZES: dict[str, int] = {"crc32": 4, "sha1": 20, "sha256": 32}


def chunk_string_to_sign(
    *, scope: CredentialScope, previous_signature: str, chunk: bytes
) -> str:
    return (
        "AWS4-HMAC-SHA256-PAYLOAD\n"
        f"{scope.timestamp}\n"
        f"{scope.scope()}\n"
        f"{previous_signature}\n"
        f"{EMPTY_SHA256_HASH}\n"
        f"{sha256_hex(chunk)}"
    )


def trailer_string_to_sign(
    *, scope: CredentialScope, previous_signature: str, trailers: bytes
) -> str:
    return (
        "AWS4-HMAC-SHA256-TRAILER\n"
        f"{scope.timestamp}\n"
        f"{scope.scope()}\n"
        f"{previous_signature}\n"
        f"{sha256_hex(trailers)}"
    )


def chunk_signature_extension(
    *, signer: RollingSigner, scope: CredentialScope
) -> ChunkExtension:
    """Build a ``chunk-signature`` extension that signs each chunk in turn."""

    def extension(chunk: bytes) -> tuple[bytes, bytes]:
        signature = signer.sign(
            lambda previous: chunk_string_to_sign(
                scope=scope, previous_signature=previous, chunk=chunk
            )
        )
        return CHUNK_SIGNATURE_EXTENSION, signature.encode()

    return extension


def trailer_signature(
    *, signer: RollingSigner, scope: CredentialScope, trailers: Sequence[Trailer]
) -> Trailer:
    """Build an ``x-amz-trailer-signature`` trailer covering ``trailers``.

    The signed block is each trailer as ``name:value\\n``, in order. Lines end
    with a bare LF here, unlike the CRLF-terminated trailer lines on the wire.
    """

    def trailer(chunk: bytes) -> tuple[bytes, bytes]:
        canonical_trailers = b"".join(
            name + b":" + value + b"\n" for name, value in (t(chunk) for t in trailers)
        )
        signature = signer.sign(
            lambda previous: trailer_string_to_sign(
                scope=scope, previous_signature=previous, trailers=canonical_trailers
            )
        )
        return TRAILER_SIGNATURE, signature.encode()

    return trailer


class _CRC32:
    def __init__(self) -> None:
        self._crc = 0

    def update(self, data: bytes) -> None:
        self._crc = zlib.crc32(data, self._crc)

    def digest(self) -> bytes:
        return self._crc.to_bytes(4, "big")


class ChecksumTrailer:
    """An ``x-amz-checksum-*`` trailer over every payload byte read through it.

    Wrap the payload source with :py:meth:`wrap` so the checksum sees the bytes
    as they're read, then pass the trailer to the encoder.
    """

    def __init__(self, algorithm: str):
        algorithm = algorithm.lower()
        if algorithm not in _CHECKSUM_DIGEST_SIZES:
            raise InvalidArgumentException(
                f"Unsupported checksum algorithm {algorithm!r}, expected one of "
                f"{', '.join(_CHECKSUM_DIGEST_SIZES)}."
            )
        self.algorithm = algorithm
        self.name = f"x-amz-checksum-{algorithm}"
        self._checksum = _CRC32() if algorithm == "crc32" else hashlib.new(algorithm)

    @property
    def value_length(self) -> int:
        """Length of the base64 encoded checksum."""
        return 4 * -(-_CHECKSUM_DIGEST_SIZES[self.algorithm] // 3)

    def update(self, data: bytes) -> None:
        self._checksum.update(data)

    def value(self) -> str:
        return base64.b64encode(self._checksum.digest()).decode("ascii")

    def wrap(self, source: ByteStream) -> ByteStream:
        return _ChecksumReader(source, self)

    def __call__(self, chunk: bytes) -> tuple[bytes, bytes]:
        return self.name.encode(), self.value().encode()


class _ChecksumReader:
    def __init__(self, source: ByteStream, checksum: ChecksumTrailer):
        self._source = source
        self._checksum = checksum

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        if data:
            self._checksum.update(data)
        return data

    def close(self) -> None:
        close = getattr(self._source, "close", None)
        if close is not None:
            close()


def encoded_content_length(
    *,
    decoded_length: int,
    chunk_size: int,
    trailers: Iterable[tuple[int, int]] = (),
) -> int:
    """The length of a payload encoded with a ``chunk-signature`` on every chunk.

    :param decoded_length: The length of the unencoded payload.
    :param chunk_size: The size of every chunk but the last.
    :param trailers: The ``(name length, value length)`` of every trailer.
    """
    extension_length = len(b";" + CHUNK_SIGNATURE_EXTENSION + b"=") + SIGNATURE_LENGTH

    def frame_length(size: int) -> int:
        return len(f"{size:x}") + extension_length + 2 + size + 2

    full_chunks, remainder = divmod(decoded_length, chunk_size)
    length = full_chunks * frame_length(chunk_size)
    if remainder:
        length += frame_length(remainder)
    # Terminating chunk header, trailers, then the closing CRLF
    length += len(b"0") + extension_length + 2
    length += sum(name + 1 + value + 2 for name, value in trailers)
    return length + 2


class SigV4StreamingSigner:
    """Signs a request and replaces its body with a signed ``aws-chunked`` stream.

    The request is signed with the ``Authorization`` field, that signature seeds
    the ``chunk-signature`` of the first chunk, and every later chunk signature
    covers the one before it. With a checksum algorithm, the checksum is sent as
    a trailer followed by a signature over the trailers.
    """

    def __init__(self, *, signer: SigV4Signer | None = None):
        self._signer = signer if signer is not None else SigV4Signer()

    def sign(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        request: AWSRequest,
        identity: AWSCredentialIdentity,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        checksum_algorithm: str | None = None,
    ) -> SigV4SigningResult:
        """Sign a copy of ``request`` with a chunk-encoded, chunk-signed body.

        :param chunk_size: The number of payload bytes in every chunk but the last.
        :param checksum_algorithm: ``crc32``, ``sha1``, or ``sha256`` to send a
            checksum of the payload as a signed trailer.
        :raises InvalidArgumentException: if the body length can't be determined
            up front or ``chunk_size`` isn't positive.
        """
        if (
            not isinstance(chunk_size, int)
            or isinstance(chunk_size, bool)
            or chunk_size <= 0
        ):
            raise InvalidArgumentException(
                f"Chunk size must be a positive integer, received {chunk_size!r}."
            )
        decoded_length = remaining_length(request.body)
        if decoded_length is None:
            raise InvalidArgumentException(
                "Chunk signing requires a body of bytes or a seekable stream so "
                "the decoded content length can be sent."
            )
        checksum = (
            ChecksumTrailer(checksum_algorithm)
            if checksum_algorithm is not None
            else None
        )

        fields = deepcopy(request.fields)
        content_encoding = fields.get("Content-Encoding")
        encodings = ["aws-chunked"]
        if content_encoding is not None:
            encodings += [v for v in content_encoding.values if v != "aws-chunked"]
        fields.set_field(Field(name="Content-Encoding", values=[",".join(encodings)]))
        fields.set_field(
            Field(name="X-Amz-Decoded-Content-Length", values=[str(decoded_length)])
        )
        trailer_lengths: list[tuple[int, int]] = []
        if checksum is None:
            payload_hash = STREAMING_SIGNED_PAYLOAD
        else:
            payload_hash = STREAMING_SIGNED_PAYLOAD_TRAILER
            fields.set_field(Field(name="X-Amz-Trailer", values=[checksum.name]))
            trailer_lengths = [
                (len(checksum.name), checksum.value_length),
                (len(TRAILER_SIGNATURE), SIGNATURE_LENGTH),
            ]
        content_length = encoded_content_length(
            decoded_length=decoded_length,
            chunk_size=chunk_size,
            trailers=trailer_lengths,
        )
        fields.set_field(Field(name="Content-Length", values=[str(content_length)]))
        fields.set_field(Field(name=CONTENT_SHA256_FIELD, values=[payload_hash]))

        result = self._signer.sign_header(
            signing_properties=signing_properties,
            request=AWSRequest(
                destination=request.destination,
                method=request.method,
                body=request.body,
                fields=fields,
            ),
            identity=identity,
        )

        scope = result.scope
        rolling_signer = RollingSigner(
            signing_key=derive_signing_key(
                secret_key=identity.secret_access_key,
                date=scope.date,
                region=scope.region,
                service=scope.service,
            ),
            seed_signature=result.signature,
        )
        source = as_byte_stream(request.body if request.body is not None else b"")
        trailers: list[Trailer] = []
        if checksum is not None:
            source = checksum.wrap(source)
            trailers = [
                checksum,
                trailer_signature(
                    signer=rolling_signer, scope=scope, trailers=[checksum]
                ),
            ]
        result.request.body = ChunkEncodedStream(
            source,
            chunk_size=chunk_size,
            extensions=[chunk_signature_extension(signer=rolling_signer, scope=scope)],
            trailers=trailers,
        )
        logger.debug(
            "Encoding %s payload bytes as aws-chunked with %s byte chunks.",
            decoded_length,
            chunk_size,
        )
        return result
