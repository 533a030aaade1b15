"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

from collections.abc import Callable

import pytest

DecodedChunk = tuple[bytes, list[tuple[bytes, bytes]]]
Decoded = tuple[list[DecodedChunk], list[tuple[bytes, bytes]]]


def _decode_chunks(body: bytes) -> Decoded:
    """Split a chunk-encoded body into its chunks, their extensions and trailers."""
    chunks: list[DecodedChunk] = []
    position = 0
    while True:
        line_end = body.index(b"\r\n", position)
        size, *extensions = body[position:line_end].split(b";")
        length = int(size, 16)
        pairs = [tuple(ext.split(b"=", 1)) for ext in extensions]
        position = line_end + 2
        chunks.append((body[position : position + length], pairs))  # type: ignore
        if length == 0:
            break
        position += length
        assert body[position : position + 2] == b"\r\n"
        position += 2

    trailers: list[tuple[bytes, bytes]] = []
    while body[position : position + 2] != b"\r\n":
        line_end = body.index(b"\r\n", position)
        name, value = body[position:line_end].split(b":", 1)
        trailers.append((name, value))
        position = line_end + 2
    assert position + 2 == len(body)
    return chunks, trailers


@pytest.fixture
def decode_chunks() -> Callable[[bytes], Decoded]:
    return _decode_chunks
