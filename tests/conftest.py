"""Shared fixtures: a throwaway contracts tree and an app bound to it."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from keiko_contracts import GatewayMetrics, Settings, create_app

REPO_ROOT = Path(__file__).resolve().parents[1]
SHIPPED_CONTRACTS = REPO_ROOT / 'contracts'

SAMPLE_OPENAPI = textwrap.dedent(
    """\
    openapi: 3.0.3
    # Comments must survive the YAML representation.
    info:
      title: Sample API
      version: 1.2.0
    servers:
      - url: http://localhost:8000
    paths:
      /ping:
        get:
          responses:
            '200':
              description: pong
    """
)

AGGREGATE_OPENAPI = textwrap.dedent(
    """\
    openapi: 3.0.1
    info:
      title: Keiko Backend-Frontend API
      version: 1.0.0
      x-released: 2025-01-15
    servers:
      - url: http://localhost:8000
    paths:
      /api/v1/health:
        get:
          responses:
            '200':
              description: healthy
    """
)

SAMPLE_ASYNCAPI = textwrap.dedent(
    """\
    asyncapi: 2.6.0
    info:
      title: Sample Events
      version: 1.0.0
    channels:
      agent/status:
        subscribe:
          message:
            payload:
              type: object
    """
)

SAMPLE_PROTO = textwrap.dedent(
    """\
    syntax = "proto3";

    package sample.v1;

    service Pinger {
      rpc Ping(Empty) returns (Empty);
    }

    message Empty {}
    """
)

SAMPLE_MANIFEST = textwrap.dedent(
    """\
    version_info:
      schema_version: 1.0.0
      last_updated: '2025-01-15'
      maintainer: Keiko Platform Team
      repository: keiko-api-contracts
    openapi:
      sample-api:
        versions:
          v1:
            file: sample-api-v1.yaml
            status: active
            release_date: '2025-01-15'
    protobuf:
      sample:
        versions:
          v1:
            file: sample.proto
            status: active
            release_date: '2025-01-15'
    """
)


def write_contracts_tree(root: Path) -> Path:
    """Populate ``root`` with one contract per category and a manifest."""
    for category in ('openapi', 'asyncapi', 'protobuf'):
        (root / category).mkdir(parents=True, exist_ok=True)
    (root / 'openapi' / 'sample-api-v1.yaml').write_text(SAMPLE_OPENAPI, encoding='utf-8')
    (root / 'openapi' / 'backend-frontend-api-v1.yaml').write_text(
        AGGREGATE_OPENAPI, encoding='utf-8'
    )
    (root / 'openapi' / 'NOTES.md').write_text('not a contract\n', encoding='utf-8')
    (root / 'asyncapi' / 'events-v1.yaml').write_text(SAMPLE_ASYNCAPI, encoding='utf-8')
    (root / 'protobuf' / 'sample.proto').write_text(SAMPLE_PROTO, encoding='utf-8')
    (root / 'versions.yaml').write_text(SAMPLE_MANIFEST, encoding='utf-8')
    return root


def make_settings(contracts_root: Path, **overrides: object) -> Settings:
    return Settings(_env_file=None, contracts_root=contracts_root, **overrides)


@pytest.fixture
def contracts_root(tmp_path: Path) -> Path:
    return write_contracts_tree(tmp_path / 'contracts')


@pytest.fixture
def settings(contracts_root: Path) -> Settings:
    return make_settings(contracts_root)


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings, GatewayMetrics())


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
