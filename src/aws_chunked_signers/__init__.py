"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0

AWS SDK Chunked Signers provides stand-alone SigV4 signing, including signed
``aws-chunked`` streaming payloads, for use with HTTP tools such as AioHTTP,
Curl, Postman, Requests, urllib3, etc.
"""

from __future__ import annotations

from ._http import URI, AWSRequest, Field, Fields
from ._identity import AWSCredentialIdentity
from ._scope import CredentialScope
from ._version import __version__
from .chunked import ChunkEncodedStream, hex_size_encoder
from .signers import (
    RollingSigner,
    SigV4Signer,
    SigV4SigningProperties,
    SigV4SigningResult,
)
from .streaming import ChecksumTrailer, SigV4StreamingSigner

__license__ = "Apache-2.0"
__version__ = __version__

__all__ = (
    "AWSCredentialIdentity",
    "AWSRequest",
    "ChecksumTrailer",
    "ChunkEncodedStream",
    "CredentialScope",
    "Field",
    "Fields",
    "RollingSigner",
    "SigV4Signer",
    "SigV4SigningProperties",
    "SigV4SigningResult",
    "SigV4StreamingSigner",
    "URI",
    "hex_size_encoder",
)
