"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0

HTTP/1.1 chunked transfer encoding (:rfc:`7230#section-4.1`) for request
payloads, with support for chunk extensions and trailers.

Each data chunk is framed as::

    <size>[;<name>=<value>]*\\r\\n
    <payload>\\r\\n

and the payload ends with a zero-length chunk followed by any trailers::

    0[;<name>=<value>]*\\r\\n
    [<name>:<value>\\r\\n]*
    \\r\\n
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from enum import Enum, auto
from types import TracebackType
from typing import Self

from ._io import as_byte_stream
from .exceptions import EncodingInvariantException, InvalidArgumentException

logger = logging.getLogger(__name__)

CRLF: bytes = b"\r\n"

ChunkExtension = Callable[[bytes], tuple[bytes, bytes]]
"""Produces a ``(name, value)`` extension from a chunk's unframed payload."""

Trailer = Callable[[bytes], tuple[bytes, bytes]]
"""Produces a ``(name, value)`` trailer, called with the terminating chunk."""

SizeEncoder = Callable[[bytes], bytes]
"""Produces the size line prefix for a chunk."""


def hex_size_encoder(chunk: bytes) -> bytes:
    """Encode the chunk length as lowercase hex without padding."""
    return f"{len(chunk):x}".encode("ascii")


class _State(Enum):
    READING = auto()
    EMITTING_CHUNK = auto()
    EMITTING_TERMINATOR = auto()
    EMITTING_TRAILERS = auto()
    DONE = auto()


class ChunkEncodedStream:
    """A readable stream that chunk-encodes the bytes of another stream.

    The source is read lazily, at most ``chunk_size`` bytes at a time, and only
    one framed chunk is held in memory. Extensions are computed for every chunk
    including the zero-length terminator and always in the order given, so they
    can safely carry state from one chunk to the next. Trailers are computed once
    the source is exhausted.

    If reading the source or building a frame fails, that exception is raised
    from the current read and again from every read after it.
    """

    def __init__(
        self,
        source: object,
        *,
        chunk_size: int,
        size_encoder: SizeEncoder = hex_size_encoder,
        extensions: Iterable[ChunkExtension] = (),
        trailers: Iterable[Trailer] = (),
    ):
        if (
            not isinstance(chunk_size, int)
            or isinstance(chunk_size, bool)
            or chunk_size <= 0
        ):
            raise InvalidArgumentException(
                f"Chunk size must be a positive integer, received {chunk_size!r}."
            )
        self._source = as_byte_stream(source)
        self._chunk_size = chunk_size
        self._size_encoder = size_encoder
        self._extensions = list(extensions)
        self._trailers = list(trailers)

        self._state = _State.READING
        self._buffer = b""
        self._position = 0
        self._error: Exception | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` encoded bytes, or everything left if ``size`` < 0.

        Returns ``b""`` once the final trailer block has been read.
        """
        self._check_readable()
        if size is None or size < 0:
            return b"".join(self._frames())

        result = bytearray()
        while len(result) < size:
            if self._position >= len(self._buffer) and not self._next_frame():
                break
            end = self._position + size - len(result)
            result += self._buffer[self._position : end]
            self._position = min(end, len(self._buffer))
        return bytes(result)

    def __iter__(self) -> Iterator[bytes]:
        self._check_readable()
        return self._frames()

    def _frames(self) -> Iterator[bytes]:
        while self._position < len(self._buffer) or self._next_frame():
            frame = self._buffer[self._position :]
            self._position = len(self._buffer)
            yield frame

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()
        close = getattr(self._source, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _check_readable(self) -> None:
        if self._closed:
            raise EncodingInvariantException(
                "I/O operation on a closed chunk-encoded stream."
            )
        if self._error is not None:
            raise self._error

    def _next_frame(self) -> bool:
        """Load the next frame into the buffer, returning False when none are left.

        Only called once the current buffer has been fully drained.
        """
        if self._error is not None:
            raise self._error
        try:
            return self._advance()
        except Exception as e:
            self._error = e
            self._release()
            raise

    def _advance(self) -> bool:
        if self._state is _State.EMITTING_CHUNK:
            self._state = _State.READING

        if self._state is _State.READING:
            chunk = self._read_chunk()
            if chunk:
                self._load(self._frame_chunk(chunk))
                self._state = _State.EMITTING_CHUNK
                logger.debug("Encoded chunk of %s bytes.", len(chunk))
            else:
                self._load(self._frame_header(b""))
                self._state = _State.EMITTING_TERMINATOR
                logger.debug("Source exhausted, encoded terminating chunk.")
            return True
        elif self._state is _State.EMITTING_TERMINATOR:
            self._load(self._trailer_block())
            self._state = _State.EMITTING_TRAILERS
            logger.debug("Encoded %s trailers.", len(self._trailers))
            return True
        elif self._state is _State.EMITTING_TRAILERS:
            self._release()
            self._state = _State.DONE
        return False

    def _read_chunk(self) -> bytes:
        # Sources may return short reads, keep reading until the chunk is full.
        chunk = bytearray()
        while len(chunk) < self._chunk_size:
            data = self._source.read(self._chunk_size - len(chunk))
            if not data:
                break
            chunk += data
        return bytes(chunk)

    def _frame_chunk(self, chunk: bytes) -> bytes:
        return self._frame_header(chunk) + chunk + CRLF

    def _frame_header(self, chunk: bytes) -> bytes:
        header = bytearray(self._size_encoder(chunk))
        for extension in self._extensions:
            name, value = _validate_pair("Chunk extension", extension(chunk))
            header += b";" + name + b"=" + value
        return bytes(header + CRLF)

    def _trailer_block(self) -> bytes:
        block = bytearray()
        for trailer in self._trailers:
            name, value = _validate_pair("Trailer", trailer(b""))
            block += name + b":" + value + CRLF
        return bytes(block + CRLF)

    def _load(self, frame: bytes) -> None:
        if self._position < len(self._buffer):
            raise EncodingInvariantException(
                "Attempted to replace a frame that hasn't been fully read."
            )
        self._buffer = frame
        self._position = 0

    def _release(self) -> None:
        self._buffer = b""
        self._position = 0


def _validate_pair(
    kind: str, pair: tuple[bytes | str, bytes | str]
) -> tuple[bytes, bytes]:
    name, value = (
        item.encode("utf-8") if isinstance(item, str) else bytes(item) for item in pair
    )
    if not name:
        raise InvalidArgumentException(f"{kind} names must not be empty.")
    if CRLF in name or CRLF in value:
        raise InvalidArgumentException(
            f"{kind} {name!r} must not contain line breaks."
        )
    return name, value
