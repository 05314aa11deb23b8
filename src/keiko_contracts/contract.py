"""Locating, reading, and interpreting the provisioned contract artifacts.

Contracts live under a single root directory with one sub-directory per
:class:`ContractCategory` and a ``versions.yaml`` manifest next to them::

    contracts/
      openapi/*.yaml
      asyncapi/*.yaml
      protobuf/*.proto
      versions.yaml

Files are read fresh on every call. Client-supplied names are checked with
:func:`validate_file_name` before any path is joined or touched, so a rejected
name never reaches the filesystem.
"""

from __future__ import annotations

import importlib
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, cast

from .errors import (
    ContractNotFound,
    ContractParseError,
    DirectoryListError,
    InvalidFileName,
    VersionManifestError,
)

yaml = cast(Any, importlib.import_module('yaml'))

VERSION_MANIFEST_FILENAME = 'versions.yaml'
YAML_MEDIA_TYPE = 'application/yaml'

_PATH_SEPARATORS = ('/', '\\')


class ContractCategory(Enum):
    """Kinds of contract the gateway serves, named after their URL prefix."""

    OPENAPI = 'openapi'
    ASYNCAPI = 'asyncapi'
    PROTOBUF = 'protobuf'

    @property
    def extensions(self) -> tuple[str, ...]:
        if self is ContractCategory.PROTOBUF:
            return ('.proto',)
        return ('.yaml', '.yml')

    @property
    def is_yaml(self) -> bool:
        return self is not ContractCategory.PROTOBUF

    @property
    def label(self) -> str:
        return {
            ContractCategory.OPENAPI: 'OpenAPI specification',
            ContractCategory.ASYNCAPI: 'AsyncAPI specification',
            ContractCategory.PROTOBUF: 'Protobuf file',
        }[self]


def validate_file_name(category: ContractCategory, file_name: str) -> str:
    """Return ``file_name`` unchanged if it is safe to join under the category root.

    Raises
    ------
    InvalidFileName
        If the name is empty, contains a parent reference or a path separator,
        or does not carry one of the category's extensions.
    """
    invalid = InvalidFileName(f'Invalid {category.label} file name')
    if not file_name or '..' in file_name:
        raise invalid
    if any(separator in file_name for separator in _PATH_SEPARATORS):
        raise invalid
    if not file_name.lower().endswith(category.extensions):
        raise invalid
    return file_name


def wants_yaml(accept_header: str | None) -> bool:
    """Whether the client asked for the raw YAML representation."""
    return accept_header is not None and YAML_MEDIA_TYPE in accept_header


def parse_yaml(text: str, *, source: str) -> Any:
    """Decode a YAML document into plain mappings, sequences, and scalars."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ContractParseError(f'Failed to parse {source}') from exc


@dataclass(frozen=True, slots=True)
class ContractFile:
    """One contract document as read from storage."""

    category: ContractCategory
    file_name: str
    path: Path
    raw_bytes: bytes

    @property
    def text(self) -> str:
        try:
            return self.raw_bytes.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise ContractParseError(f'Failed to parse {self.category.label}') from exc

    def parse(self) -> Any:
        """Return the YAML tree of an OpenAPI or AsyncAPI document."""
        if not self.category.is_yaml:
            msg = f'{self.category.label} files are served as opaque text.'
            raise TypeError(msg)
        return parse_yaml(self.text, source=self.category.label)


@dataclass(frozen=True, slots=True)
class ContractInfo:
    """Lightweight view of a document's ``info`` section."""

    title: str | None
    version: str | None
    spec_version: str | None


def coerce_optional(value: Any) -> str | None:
    """Convert optional YAML scalars into optional strings."""

    if value is None:
        return None
    text = str(value).strip()
    return text or None


def summarise_document(document: Any) -> ContractInfo:
    """Extract title, version, and the OpenAPI/AsyncAPI version of a parsed tree."""

    if not isinstance(document, Mapping):
        return ContractInfo(title=None, version=None, spec_version=None)
    raw_info = document.get('info')
    info = raw_info if isinstance(raw_info, Mapping) else {}
    spec_version = document.get('openapi', document.get('asyncapi'))
    return ContractInfo(
        title=coerce_optional(info.get('title')),
        version=coerce_optional(info.get('version')),
        spec_version=coerce_optional(spec_version),
    )


class ContractStore:
    """Read-only view over a provisioned contracts directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def category_root(self, category: ContractCategory) -> Path:
        return self.root / category.value

    @property
    def manifest_path(self) -> Path:
        return self.root / VERSION_MANIFEST_FILENAME

    def resolve(self, category: ContractCategory, file_name: str) -> Path:
        """Validate ``file_name`` and return the path of an existing contract."""
        validate_file_name(category, file_name)
        path = self.category_root(category) / file_name
        if not path.is_file():
            raise ContractNotFound(file_name, f'{category.label} not found: {file_name}')
        return path

    def load(self, category: ContractCategory, file_name: str) -> ContractFile:
        """Load a client-named contract, enforcing the file name allow-list."""
        return self._read(category, file_name, self.resolve(category, file_name))

    def load_trusted(self, category: ContractCategory, file_name: str) -> ContractFile:
        """Load a contract whose name comes from configuration, not from a client."""
        path = self.category_root(category) / file_name
        if not path.is_file():
            raise ContractNotFound(file_name, f'{category.label} not found: {file_name}')
        return self._read(category, file_name, path)

    def _read(self, category: ContractCategory, file_name: str, path: Path) -> ContractFile:
        try:
            raw_bytes = path.read_bytes()
        except OSError as exc:
            raise ContractParseError(f'Failed to read {category.label}') from exc
        return ContractFile(category=category, file_name=file_name, path=path, raw_bytes=raw_bytes)

    def list_contracts(self) -> dict[ContractCategory, list[str]]:
        """Return the sorted contract file names of every category."""
        listing: dict[ContractCategory, list[str]] = {}
        for category in ContractCategory:
            root = self.category_root(category)
            try:
                entries = [
                    entry.name
                    for entry in root.iterdir()
                    if entry.is_file() and entry.name.lower().endswith(category.extensions)
                ]
            except OSError as exc:
                raise DirectoryListError() from exc
            listing[category] = sorted(entries)
        return listing

    def load_version_manifest(self) -> Any:
        """Read and parse ``versions.yaml``."""
        try:
            text = self.manifest_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as exc:
            raise VersionManifestError() from exc
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise VersionManifestError() from exc
