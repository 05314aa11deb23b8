"""Structural checks for the provisioned contract documents.

These checks run offline (``keiko-contracts specs validate``) against the same
contracts tree the gateway serves. They catch the provisioning mistakes that
would otherwise surface to clients as 500 responses or as documents that do not
describe a usable API.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeGuard, cast

from .contract import ContractCategory, ContractStore, coerce_optional
from .errors import ContractParseError, InvalidFileName, VersionManifestError

HTTP_METHODS = frozenset({'get', 'put', 'post', 'delete', 'options', 'head', 'patch', 'trace'})
PATH_ITEM_FIELDS = frozenset({'parameters', 'summary', 'description', 'servers', '$ref'})
_RESPONSE_CODE = re.compile(r'^[1-5](\d{2}|XX)$')


@dataclass(frozen=True, slots=True)
class ContractValidationResult:
    """Structured response describing contract validation issues."""

    errors: tuple[str, ...]
    warnings: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        """Return ``True`` when no validation errors were recorded."""

        return not self.errors


def _is_mapping(value: Any) -> TypeGuard[Mapping[str, Any]]:
    return isinstance(value, Mapping)


def _root_not_mapping(source: str) -> ContractValidationResult:
    message = f'{source}: document root must be a mapping.'
    return ContractValidationResult(errors=(message,), warnings=())


def _validate_info_section(document: Mapping[str, Any], errors: list[str], source: str) -> None:
    info = document.get('info')
    if not _is_mapping(info):
        errors.append(f'{source}: must define an `info` object with metadata.')
        return
    for field in ('title', 'version'):
        if coerce_optional(info.get(field)) is None:
            errors.append(f'{source}: info must set a non-empty `{field}` value.')


def _validate_openapi_version(
    document: Mapping[str, Any],
    errors: list[str],
    warnings: list[str],
    source: str,
) -> None:
    version = document.get('openapi')
    if not isinstance(version, str):
        errors.append(f'{source}: must declare an OpenAPI version string under `openapi`.')
        return
    if not version.startswith('3.'):
        warnings.append(f'{source}: targets OpenAPI 3.x; unexpected version detected ({version}).')


def _validate_servers(document: Mapping[str, Any], warnings: list[str], source: str) -> None:
    servers = document.get('servers')
    if servers is None:
        warnings.append(f'{source}: should declare at least one server entry.')
        return
    if not isinstance(servers, list) or not servers:
        warnings.append(f'{source}: servers must be a non-empty list of server objects.')
        return
    for index, server in enumerate(servers):
        if not _is_mapping(server):
            warnings.append(f'{source}: server entry #{index + 1} must be an object.')


def _validate_responses(
    responses: Mapping[str, Any], errors: list[str], where: str
) -> None:
    codes = [str(code) for code in responses]
    for code in codes:
        if code != 'default' and not _RESPONSE_CODE.match(code):
            errors.append(f'{where}: response code `{code}` is not a valid HTTP status.')
    if not any(code.startswith('2') or code == 'default' for code in codes):
        errors.append(f'{where}: must define a 2xx or default response.')


def _validate_paths(document: Mapping[str, Any], errors: list[str], source: str) -> None:
    paths = document.get('paths')
    if not _is_mapping(paths) or not paths:
        errors.append(f'{source}: must include at least one path definition under `paths`.')
        return
    for path, path_item in paths.items():
        if not _is_mapping(path_item):
            errors.append(f'{source}: path `{path}` must map HTTP verbs to operation objects.')
            continue
        path_mapping = cast(Mapping[str, Any], path_item)
        for verb, operation in path_mapping.items():
            if verb in PATH_ITEM_FIELDS:
                continue
            where = f'{source}: operation `{verb}` under `{path}`'
            if str(verb).lower() not in HTTP_METHODS:
                errors.append(f'{where} is not a valid HTTP method.')
                continue
            if not _is_mapping(operation):
                errors.append(f'{where} must be an object.')
                continue
            responses = operation.get('responses')
            if not _is_mapping(responses) or not responses:
                errors.append(f'{where} must define responses.')
                continue
            _validate_responses(cast(Mapping[str, Any], responses), errors, where)


def _validate_security(document: Mapping[str, Any], errors: list[str], source: str) -> None:
    security = document.get('security')
    if security is None:
        return
    if not isinstance(security, list):
        errors.append(f'{source}: `security` must be a list of requirement objects.')
        return
    components = document.get('components')
    schemes = components.get('securitySchemes') if _is_mapping(components) else None
    declared = set(schemes) if _is_mapping(schemes) else set()
    for requirement in security:
        if not _is_mapping(requirement):
            errors.append(f'{source}: security requirements must be objects.')
            continue
        for scheme in requirement:
            if scheme not in declared:
                errors.append(f'{source}: security scheme `{scheme}` is not declared.')


def validate_openapi_document(
    document: Any, source: str = 'OpenAPI document'
) -> ContractValidationResult:
    """Run structural validation against a parsed OpenAPI document."""

    errors: list[str] = []
    warnings: list[str] = []
    if not _is_mapping(document):
        return _root_not_mapping(source)

    _validate_openapi_version(document, errors, warnings, source)
    _validate_info_section(document, errors, source)
    _validate_servers(document, warnings, source)
    _validate_paths(document, errors, source)
    _validate_security(document, errors, source)
    return ContractValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def validate_asyncapi_document(
    document: Any, source: str = 'AsyncAPI document'
) -> ContractValidationResult:
    """Run structural validation against a parsed AsyncAPI document."""

    errors: list[str] = []
    warnings: list[str] = []
    if not _is_mapping(document):
        return _root_not_mapping(source)

    version = document.get('asyncapi')
    if not isinstance(version, str):
        errors.append(f'{source}: must declare an AsyncAPI version string under `asyncapi`.')
    elif not version.startswith('2.'):
        warnings.append(f'{source}: targets AsyncAPI 2.x; unexpected version detected ({version}).')
    _validate_info_section(document, errors, source)

    components = document.get('components')
    messages = components.get('messages') if _is_mapping(components) else None
    if not _is_mapping(document.get('channels')) and not _is_mapping(messages):
        errors.append(f'{source}: must define `channels` or `components.messages`.')
    return ContractValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def validate_version_manifest(manifest: Any, store: ContractStore) -> ContractValidationResult:
    """Check the manifest header and that every referenced file is provisioned."""

    source = 'versions.yaml'
    errors: list[str] = []
    warnings: list[str] = []
    if not _is_mapping(manifest):
        return _root_not_mapping(source)

    version_info = manifest.get('version_info')
    if not _is_mapping(version_info) or coerce_optional(version_info.get('schema_version')) is None:
        errors.append(f'{source}: `version_info.schema_version` is required.')

    for category in ContractCategory:
        entries = manifest.get(category.value)
        if entries is None:
            continue
        if not _is_mapping(entries):
            errors.append(f'{source}: `{category.value}` must map contract names to entries.')
            continue
        for name, entry in entries.items():
            versions = entry.get('versions') if _is_mapping(entry) else None
            if not _is_mapping(versions):
                errors.append(f'{source}: `{category.value}.{name}` must define `versions`.')
                continue
            for label, details in versions.items():
                where = f'{source}: `{category.value}.{name}.{label}`'
                if not _is_mapping(details):
                    errors.append(f'{where} must be an object.')
                    continue
                file_name = coerce_optional(details.get('file'))
                if file_name is None:
                    errors.append(f'{where} must reference a `file`.')
                elif not (store.category_root(category) / Path(file_name).name).is_file():
                    errors.append(f'{where} references missing file `{file_name}`.')
                status = coerce_optional(details.get('status'))
                if status != 'active':
                    warnings.append(f'{where} has status `{status}`.')
    return ContractValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def validate_contracts(store: ContractStore, strict: bool = False) -> ContractValidationResult:
    """Validate every YAML contract and the version manifest under ``store``."""

    errors: list[str] = []
    warnings: list[str] = []
    validators = {
        ContractCategory.OPENAPI: validate_openapi_document,
        ContractCategory.ASYNCAPI: validate_asyncapi_document,
    }

    listing = store.list_contracts()
    for category, validator in validators.items():
        for file_name in listing[category]:
            source = f'{category.value}/{file_name}'
            try:
                document = store.load(category, file_name).parse()
            except InvalidFileName:
                errors.append(f'{source}: file name cannot be served by the gateway.')
                continue
            except ContractParseError:
                errors.append(f'{source}: not a valid YAML document.')
                continue
            result = validator(document, source)
            errors.extend(result.errors)
            warnings.extend(result.warnings)

    try:
        manifest = store.load_version_manifest()
    except VersionManifestError:
        errors.append('versions.yaml: missing or not a valid YAML document.')
    else:
        result = validate_version_manifest(manifest, store)
        errors.extend(result.errors)
        warnings.extend(result.warnings)

    if strict and warnings:
        errors.extend(f'[strict] {message}' for message in warnings)
        warnings = []

    return ContractValidationResult(errors=tuple(errors), warnings=tuple(warnings))

