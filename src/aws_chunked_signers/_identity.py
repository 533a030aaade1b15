"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

import sys
from dataclasses import dataclass
from datetime import datetime

from .interfaces.identity import AWSCredentialsIdentity

if sys.version_info < (3, 12):
    from datetime import timezone

    UTC = timezone.utc
else:
    from datetime import UTC


@dataclass(kw_only=True)
class AWSCredentialIdentity(AWSCredentialsIdentity):
    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    account_id: str | None = None
    expiration: datetime | None = None

    def __post_init__(self) -> None:
        if not self.access_key_id:
            raise ValueError(
                "access_key_id is required to build a credential identity."
            )
        if not self.secret_access_key:
            raise ValueError(
                "secret_access_key is required to build a credential identity."
            )

    @property
    def is_expired(self) -> bool:
        """Whether the identity is expired."""
        if self.expiration is None:
            return False
        return self.expiration < datetime.now(UTC)
