"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from .exceptions import InvalidArgumentException

SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGV4_DATE_FORMAT: str = "%Y%m%d"


@dataclass(frozen=True, kw_only=True)
class CredentialScope:
    """The date, region, and service a SigV4 signature is valid for."""

    region: str
    service: str
    instant: datetime

    @classmethod
    def from_timestamp(
        cls, *, region: str, service: str, timestamp: str
    ) -> "CredentialScope":
        """Build a scope from a ``YYYYMMDD'T'HHMMSS'Z'`` signing timestamp."""
        return cls(region=region, service=service, instant=parse_timestamp(timestamp))

    @property
    def date(self) -> str:
        return self.instant.strftime(SIGV4_DATE_FORMAT)

    @property
    def timestamp(self) -> str:
        return self.instant.strftime(SIGV4_TIMESTAMP_FORMAT)

    def scope(self) -> str:
        # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
        return f"{self.date}/{self.region}/{self.service}/aws4_request"


def format_timestamp(instant: datetime) -> str:
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.strftime(SIGV4_TIMESTAMP_FORMAT)


def parse_timestamp(timestamp: str) -> datetime:
    try:
        parsed = datetime.strptime(timestamp, SIGV4_TIMESTAMP_FORMAT)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentException(
            "Signing date must be formatted as YYYYMMDD'T'HHMMSS'Z', "
            f"received {timestamp!r}."
        ) from e
    return parsed.replace(tzinfo=timezone.utc)
