"""Provisioning health checks for a contracts directory."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .config import Settings
from .contract import ContractCategory, ContractStore
from .errors import VersionManifestError


class CheckStatus(Enum):
    """Outcome of a doctor check."""

    # Status strings are UI labels, not secrets.
    PASS = 'pass'  # nosec B105
    WARN = 'warn'
    FAIL = 'fail'


@dataclass(frozen=True)
class DoctorCheckResult:
    """Represents the outcome of a single validation."""

    name: str
    status: CheckStatus
    message: str
    remediation: str | None = None


def _category_root_check(store: ContractStore, category: ContractCategory) -> DoctorCheckResult:
    root = store.category_root(category)
    name = f'{category.value} directory'
    if root.is_dir():
        return DoctorCheckResult(
            name=name,
            status=CheckStatus.PASS,
            message=f'Found {root}.',
        )
    return DoctorCheckResult(
        name=name,
        status=CheckStatus.FAIL,
        message=f'Missing contract directory: {root}.',
        remediation='Provision the contract artifacts before starting the gateway.',
    )


def _category_content_check(
    store: ContractStore, category: ContractCategory
) -> DoctorCheckResult | None:
    root = store.category_root(category)
    if not root.is_dir():
        return None
    count = sum(
        1
        for entry in root.iterdir()
        if entry.is_file() and entry.name.lower().endswith(category.extensions)
    )
    name = f'{category.value} contracts'
    if count:
        return DoctorCheckResult(
            name=name,
            status=CheckStatus.PASS,
            message=f'{count} {category.label} file(s) available.',
        )
    return DoctorCheckResult(
        name=name,
        status=CheckStatus.WARN,
        message=f'No {category.label} files with extension {", ".join(category.extensions)}.',
        remediation='Check the deployment copied the expected contract files.',
    )


def _manifest_check(store: ContractStore) -> DoctorCheckResult:
    try:
        store.load_version_manifest()
    except VersionManifestError as exc:
        return DoctorCheckResult(
            name='Version manifest',
            status=CheckStatus.FAIL,
            message=f'{store.manifest_path} could not be loaded ({exc.__cause__}).',
            remediation='Restore versions.yaml from the contracts repository.',
        )
    return DoctorCheckResult(
        name='Version manifest',
        status=CheckStatus.PASS,
        message=f'{store.manifest_path} parsed successfully.',
    )


def _aggregate_check(store: ContractStore, audience: str, file_name: str) -> DoctorCheckResult:
    path = store.category_root(ContractCategory.OPENAPI) / file_name
    name = f'{audience.capitalize()} aggregate spec'
    if path.is_file():
        return DoctorCheckResult(
            name=name,
            status=CheckStatus.PASS,
            message=f'Found {path}.',
        )
    return DoctorCheckResult(
        name=name,
        status=CheckStatus.FAIL,
        message=f'Missing aggregate document: {path}.',
        remediation=f'Provision {file_name} or point {audience.upper()}_SPEC at an existing file.',
    )


def run_checks(settings: Settings) -> list[DoctorCheckResult]:
    """Execute all provisioning checks against ``settings.contracts_root``."""

    store = ContractStore(settings.contracts_root)
    checks: list[DoctorCheckResult] = []
    for category in ContractCategory:
        checks.append(_category_root_check(store, category))
        content = _category_content_check(store, category)
        if content is not None:
            checks.append(content)
    checks.append(_manifest_check(store))
    checks.append(_aggregate_check(store, 'frontend', settings.frontend_spec))
    checks.append(_aggregate_check(store, 'backend', settings.backend_spec))
    return checks


def has_failures(results: list[DoctorCheckResult]) -> bool:
    return any(result.status is CheckStatus.FAIL for result in results)
