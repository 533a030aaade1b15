"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from .exceptions import InvalidArgumentException
from .interfaces.io import ByteStream

StreamingBody = bytes | bytearray | ByteStream | Iterable[bytes]


@dataclass(kw_only=True)
class URI:
    """Universal Resource Identifier, target location for an :py:class:`AWSRequest`.

    ``path`` and ``query`` hold their raw, already percent-encoded forms.
    """

    scheme: str = "https"
    username: str | None = None
    password: str | None = None
    host: str
    port: int | None = None
    path: str | None = None
    query: str | None = None
    fragment: str | None = None

    @classmethod
    def from_string(cls, url: str) -> URI:
        """Split an absolute URL into its components.

        :raises InvalidArgumentException: if the URL has no scheme or host.
        """
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError as e:
            raise InvalidArgumentException(f"Malformed URI {url!r}: {e}") from e
        if not parts.scheme or not parts.hostname:
            raise InvalidArgumentException(
                f"Malformed URI {url!r}: a scheme and host are required."
            )
        return cls(
            scheme=parts.scheme,
            username=parts.username,
            password=parts.password,
            host=parts.hostname,
            port=port,
            path=parts.path or None,
            query=parts.query or None,
            fragment=parts.fragment or None,
        )

    @property
    def netloc(self) -> str:
        """Construct netloc string in format ``{username}:{password}@{host}:{port}``"""
        if self.username is not None:
            password = "" if self.password is None else f":{self.password}"
            userinfo = f"{self.username}{password}@"
        else:
            userinfo = ""
        return f"{userinfo}{self.host_port}"

    @property
    def host_port(self) -> str:
        """The ``{host}:{port}`` form sent in the ``Host`` field, without userinfo.

        IPv6 addresses are enclosed in brackets.
        """
        host = self.host
        try:
            if ipaddress.ip_address(host).version == 6:
                host = f"[{host}]"
        except ValueError:
            pass

        port = "" if self.port is None else f":{self.port}"
        return f"{host}{port}"

    def build(self) -> str:
        """Construct URI string representation.

        Returns a string of the form
        ``{scheme}://{username}:{password}@{host}:{port}{path}?{query}#{fragment}``
        """
        return urlunsplit(
            (
                self.scheme,
                self.netloc,
                self.path or "",
                self.query or "",
                self.fragment or "",
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheme": self.scheme,
            "username": self.username,
            "password": self.password,
            "host": self.host,
            "port": self.port,
            "path": self.path,
            "query": self.query,
            "fragment": self.fragment,
        }

    def query_params(self) -> list[tuple[str, str]]:
        """Decoded query parameters in the order they appear.

        Parameters without a value are returned with an empty string value.
        """
        if not self.query:
            return []
        return parse_qsl(qs=self.query, keep_blank_values=True)

    def with_query_params(self, params: Iterable[tuple[str, str]]) -> URI:
        """Return a copy of this URI with ``params`` appended to the query."""
        encoded = "&".join(
            f"{quote(string=key, safe='')}={quote(string=value, safe='')}"
            for key, value in params
        )
        if not encoded:
            return replace(self)
        query = f"{self.query}&{encoded}" if self.query else encoded
        return replace(self, query=query)


class Field:
    """A name-value pair representing a single field in a request.

    A field may carry several values, they're kept in the order they were added.
    """

    def __init__(self, *, name: str, values: Iterable[str] | None = None):
        self.name = name
        self.values: list[str] = list(values) if values is not None else []

    def add(self, value: str) -> None:
        """Append a value to the field."""
        self.values.append(value)

    def set(self, values: list[str]) -> None:
        """Overwrite existing field values."""
        self.values = list(values)

    def remove(self, value: str) -> None:
        """Remove all matching entries from the value list."""
        self.values = [val for val in self.values if val != value]

    def as_string(self, delimiter: str = ",") -> str:
        """Get the field values as a single string joined by ``delimiter``."""
        return delimiter.join(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return False
        return self.name == other.name and self.values == other.values

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, values={self.values!r})"


class Fields:
    """Ordered collection of :py:class:`Field` with case-insensitive names.

    Iteration yields fields in the order their names were first added.
    """

    def __init__(self, initial: Iterable[Field] | None = None):
        self.entries: dict[str, Field] = {}
        for item in initial or ():
            self.add_field(item)

    def _normalize_name(self, name: str) -> str:
        return name.lower()

    def set_field(self, field: Field) -> None:
        """Set an entry, replacing any existing field with the same name."""
        self.entries[self._normalize_name(field.name)] = field

    def add_field(self, field: Field) -> None:
        """Add an entry, appending values to an existing field of the same name."""
        existing = self.entries.get(self._normalize_name(field.name))
        if existing is None:
            self.set_field(Field(name=field.name, values=field.values))
        else:
            existing.values.extend(field.values)

    def get_field(self, name: str) -> Field:
        """Retrieve a field by case-insensitive name.

        :raises KeyError: if no field with that name is present.
        """
        return self.entries[self._normalize_name(name)]

    def get(self, name: str, default: Field | None = None) -> Field | None:
        return self.entries.get(self._normalize_name(name), default)

    def remove_field(self, name: str) -> None:
        """Remove a field by case-insensitive name, if present."""
        self.entries.pop(self._normalize_name(name), None)

    def __getitem__(self, name: str) -> Field:
        return self.get_field(name)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return self._normalize_name(name) in self.entries

    def __iter__(self) -> Iterator[Field]:
        return iter(self.entries.values())

    def __len__(self) -> int:
        return len(self.entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fields):
            return False
        return self.entries == other.entries

    def __repr__(self) -> str:
        return f"Fields({list(self.entries.values())!r})"


@dataclass(kw_only=True)
class AWSRequest:
    """An HTTP request to be signed and sent to an AWS service."""

    destination: URI
    method: str
    body: StreamingBody | None = None
    fields: Fields = field(default_factory=Fields)
