"""Keiko API contracts gateway.

Serves the provisioned OpenAPI, AsyncAPI, and Protobuf artifacts over HTTP.
Keep public APIs explicit in ``__all__`` where practical.
"""

from __future__ import annotations

__version__ = '1.0.0'

from .api import create_app  # noqa: E402
from .config import Settings, get_settings  # noqa: E402
from .contract import ContractCategory, ContractFile, ContractStore  # noqa: E402
from .metrics import GatewayMetrics  # noqa: E402

__all__: list[str] = [
    '__version__',
    'ContractCategory',
    'ContractFile',
    'ContractStore',
    'GatewayMetrics',
    'Settings',
    'create_app',
    'get_settings',
]
