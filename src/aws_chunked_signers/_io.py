"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

from collections.abc import Iterable, Iterator
from io import BytesIO

from .exceptions import InvalidArgumentException
from .interfaces.io import ByteStream, Seekable


class BytesReader:
    """A file-like object that reads from an iterable of byte chunks."""

    def __init__(self, data: Iterable[bytes]):
        self._iterator: Iterator[bytes] | None = iter(data)
        self._remainder = b""

    def read(self, size: int = -1) -> bytes:
        if self._iterator is None:
            return b""

        if size < 0:
            result = self._remainder + b"".join(self._iterator)
            self._remainder = b""
            self._iterator = None
            return result

        while len(self._remainder) < size:
            try:
                self._remainder += next(self._iterator)
            except StopIteration:
                self._iterator = None
                break

        result = self._remainder[:size]
        self._remainder = self._remainder[size:]
        return result


def as_byte_stream(source: object) -> ByteStream:
    """Wrap a bytes-like value, file-like object, or byte iterable for reading."""
    if isinstance(source, bytes | bytearray):
        return BytesIO(source)
    if isinstance(source, ByteStream):
        return source
    if isinstance(source, Iterable) and not isinstance(source, str):
        return BytesReader(source)
    raise InvalidArgumentException(
        f"Expected bytes, a readable stream, or an iterable of bytes but received "
        f"{type(source)}."
    )


def is_seekable(body: object) -> bool:
    if not isinstance(body, Seekable):
        return False
    seekable = getattr(body, "seekable", None)
    if seekable is not None:
        return bool(seekable())
    return True


def remaining_length(body: object) -> int | None:
    """Number of bytes left to read from ``body``, if it can be known up front."""
    if body is None:
        return 0
    if isinstance(body, bytes | bytearray):
        return len(body)
    if isinstance(body, Seekable) and is_seekable(body):
        position = body.tell()
        end = body.seek(0, 2)
        body.seek(position)
        return end - position
    return None
