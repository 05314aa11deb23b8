"""HTTP behaviour of the gateway endpoints."""

from __future__ import annotations

import re
import shutil
from pathlib import Path

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient

from keiko_contracts import GatewayMetrics, __version__, create_app

from .conftest import SHIPPED_CONTRACTS, make_settings


def test_health_reports_service_identity(client: TestClient) -> None:
    response = client.get('/health')
    assert response.status_code == 200
    payload = response.json()
    assert payload['status'] == 'healthy'
    assert payload['service'] == 'keiko-api-contracts'
    assert payload['version'] == __version__
    assert payload['timestamp']
    assert payload['correlationId'] == response.headers['x-correlation-id']


def test_health_survives_missing_contract_directories(
    client: TestClient, contracts_root: Path
) -> None:
    shutil.rmtree(contracts_root)
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json()['status'] == 'healthy'


def test_every_response_carries_security_and_correlation_headers(client: TestClient) -> None:
    for path in ('/health', '/specs', '/openapi/missing.yaml', '/unknown-endpoint'):
        response = client.get(path)
        assert response.headers['x-content-type-options'] == 'nosniff'
        assert response.headers['x-frame-options'] == 'SAMEORIGIN'
        assert response.headers['x-correlation-id']


def test_correlation_ids_are_unique_per_request(client: TestClient) -> None:
    first = client.get('/health').headers['x-correlation-id']
    second = client.get('/health').headers['x-correlation-id']
    assert first != second


def test_openapi_renders_json_by_default(client: TestClient) -> None:
    response = client.get('/openapi/sample-api-v1.yaml', headers={'Accept': 'application/json'})
    assert response.status_code == 200
    assert response.headers['content-type'].startswith('application/json')
    assert response.json()['info'] == {'title': 'Sample API', 'version': '1.2.0'}


def test_openapi_renders_raw_yaml_when_requested(client: TestClient, contracts_root: Path) -> None:
    response = client.get('/openapi/sample-api-v1.yaml', headers={'Accept': 'application/yaml'})
    assert response.status_code == 200
    assert response.headers['content-type'].startswith('application/yaml')
    original = (contracts_root / 'openapi' / 'sample-api-v1.yaml').read_text(encoding='utf-8')
    assert response.text == original
    assert '# Comments must survive' in response.text


def test_json_and_yaml_representations_are_equivalent(client: TestClient) -> None:
    for path in ('/openapi/sample-api-v1.yaml', '/asyncapi/events-v1.yaml'):
        as_json = client.get(path).json()
        as_yaml = client.get(path, headers={'Accept': 'application/yaml'}).text
        assert yaml.safe_load(yaml.safe_dump(as_json)) == yaml.safe_load(as_yaml)


def test_asyncapi_contract_is_served(client: TestClient) -> None:
    response = client.get('/asyncapi/events-v1.yaml')
    assert response.status_code == 200
    assert response.json()['asyncapi'] == '2.6.0'


def test_protobuf_is_served_as_plain_text(client: TestClient, contracts_root: Path) -> None:
    response = client.get('/protobuf/sample.proto')
    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/plain')
    assert response.content == (contracts_root / 'protobuf' / 'sample.proto').read_bytes()


@pytest.mark.parametrize(
    'path',
    [
        '/openapi/..%2F..%2Fetc%2Fpasswd',
        '/openapi/..secret.yaml',
        '/asyncapi/nested%2Fevents.yaml',
        '/openapi/sample-api-v1.json',
        '/protobuf/sample.yaml',
    ],
)
def test_invalid_file_names_are_rejected(client: TestClient, path: str) -> None:
    response = client.get(path)
    assert response.status_code == 400
    body = response.json()
    assert 'Invalid' in body['error']
    assert body['correlationId'] == response.headers['x-correlation-id']


def test_invalid_names_are_rejected_even_without_contract_directories(tmp_path: Path) -> None:
    client = TestClient(create_app(make_settings(tmp_path / 'absent'), GatewayMetrics()))
    assert client.get('/openapi/..%2F..%2Fetc%2Fpasswd').status_code == 400


@pytest.mark.parametrize(
    'path',
    ['/openapi/nonexistent.yaml', '/asyncapi/nonexistent.yaml', '/protobuf/nonexistent.proto'],
)
def test_missing_contracts_return_not_found(client: TestClient, path: str) -> None:
    response = client.get(path)
    assert response.status_code == 404
    body = response.json()
    assert 'nonexistent' in body['error']
    assert body['correlationId']


def test_corrupt_contract_returns_parse_error(client: TestClient, contracts_root: Path) -> None:
    (contracts_root / 'openapi' / 'broken.yaml').write_text('openapi: [unclosed\n', 'utf-8')
    response = client.get('/openapi/broken.yaml')
    assert response.status_code == 500
    body = response.json()
    assert body['error'] == 'Failed to parse OpenAPI specification'
    assert 'Traceback' not in response.text


def test_corrupt_contract_is_still_served_verbatim_as_yaml(
    client: TestClient, contracts_root: Path
) -> None:
    (contracts_root / 'openapi' / 'broken.yaml').write_text('openapi: [unclosed\n', 'utf-8')
    response = client.get('/openapi/broken.yaml', headers={'Accept': 'application/yaml'})
    assert response.status_code == 200
    assert response.text == 'openapi: [unclosed\n'


def test_non_finite_numbers_render_as_null(client: TestClient, contracts_root: Path) -> None:
    (contracts_root / 'openapi' / 'limits.yaml').write_text(
        'openapi: 3.0.3\n'
        'info: {title: Limits, version: "1"}\n'
        'x-max: .inf\n'
        'x-values: [1.5, -.inf, .nan]\n',
        encoding='utf-8',
    )
    response = client.get('/openapi/limits.yaml')
    assert response.status_code == 200
    body = response.json()
    assert body['x-max'] is None
    assert body['x-values'] == [1.5, None, None]


def test_non_finite_numbers_in_manifest_and_aggregates(
    client: TestClient, contracts_root: Path
) -> None:
    with (contracts_root / 'versions.yaml').open('a', encoding='utf-8') as manifest:
        manifest.write('limits:\n  max_size: .inf\n')
    with (contracts_root / 'openapi' / 'backend-frontend-api-v1.yaml').open(
        'a', encoding='utf-8'
    ) as aggregate:
        aggregate.write('x-ceiling: .nan\n')

    versions = client.get('/versions')
    assert versions.status_code == 200
    assert versions.json()['limits'] == {'max_size': None}

    frontend = client.get('/frontend/openapi.json')
    assert frontend.status_code == 200
    assert frontend.json()['x-ceiling'] is None


def test_specs_lists_contracts_and_fixed_paths(client: TestClient) -> None:
    response = client.get('/specs')
    assert response.status_code == 200
    assert response.json() == {
        'openapi': ['/openapi/backend-frontend-api-v1.yaml', '/openapi/sample-api-v1.yaml'],
        'asyncapi': ['/asyncapi/events-v1.yaml'],
        'protobuf': ['/protobuf/sample.proto'],
        'frontend_spec': '/frontend/openapi.json',
        'backend_spec': '/backend/openapi.json',
        'metrics': '/metrics',
        'health': '/health',
        'versions': '/versions',
    }


def test_specs_reports_unreadable_directories(client: TestClient, contracts_root: Path) -> None:
    shutil.rmtree(contracts_root / 'asyncapi')
    response = client.get('/specs')
    assert response.status_code == 500
    assert response.json()['error'] == 'Failed to list specifications'


def test_versions_is_idempotent(client: TestClient) -> None:
    first = client.get('/versions')
    second = client.get('/versions')
    assert first.status_code == 200
    assert first.content == second.content
    assert first.json()['version_info']['maintainer'] == 'Keiko Platform Team'


def test_versions_reports_manifest_errors(client: TestClient, contracts_root: Path) -> None:
    (contracts_root / 'versions.yaml').unlink()
    response = client.get('/versions')
    assert response.status_code == 500
    assert response.json()['error'] == 'Failed to load versions'


@pytest.mark.parametrize('path', ['/frontend/openapi.json', '/backend/openapi.json'])
def test_aggregate_documents_render_json(client: TestClient, path: str) -> None:
    response = client.get(path, headers={'Accept': 'application/yaml'})
    assert response.status_code == 200
    assert response.headers['content-type'].startswith('application/json')
    document = response.json()
    assert document['info']['title'] == 'Keiko Backend-Frontend API'
    # YAML dates are rendered as ISO strings.
    assert document['info']['x-released'] == '2025-01-15'


def test_aggregate_document_missing_is_server_error(
    client: TestClient, contracts_root: Path
) -> None:
    (contracts_root / 'openapi' / 'backend-frontend-api-v1.yaml').unlink()
    response = client.get('/frontend/openapi.json')
    assert response.status_code == 500
    assert response.json()['error'] == 'Failed to load frontend API spec'


def test_aggregate_document_uses_configured_file(contracts_root: Path) -> None:
    settings = make_settings(contracts_root, backend_spec='sample-api-v1.yaml')
    client = TestClient(create_app(settings, GatewayMetrics()))
    assert client.get('/backend/openapi.json').json()['info']['title'] == 'Sample API'


def test_unknown_routes_return_not_found(client: TestClient) -> None:
    response = client.get('/unknown-endpoint')
    assert response.status_code == 404
    assert response.json()['error'] == 'Not found'
    assert response.json()['correlationId'] == response.headers['x-correlation-id']


def test_unsupported_method_returns_method_not_allowed(client: TestClient) -> None:
    response = client.post('/health')
    assert response.status_code == 405
    assert 'error' in response.json()


def test_unhandled_errors_return_generic_server_error(app: FastAPI) -> None:
    def explode() -> None:
        raise RuntimeError('secret internals')

    app.add_api_route('/explode', explode)
    client = TestClient(app, raise_server_exceptions=False)
    response = client.get('/explode')
    assert response.status_code == 500
    assert response.json() == {
        'error': 'Internal server error',
        'correlationId': response.headers['x-correlation-id'],
    }
    assert 'secret internals' not in response.text


def test_cors_allows_configured_origins(client: TestClient) -> None:
    allowed = client.get('/health', headers={'Origin': 'http://localhost:3000'})
    assert allowed.headers['access-control-allow-origin'] == 'http://localhost:3000'

    denied = client.get('/health', headers={'Origin': 'http://evil.example'})
    assert 'access-control-allow-origin' not in denied.headers


def test_cors_preflight_is_answered(client: TestClient) -> None:
    response = client.options(
        '/specs',
        headers={
            'Origin': 'http://localhost:8001',
            'Access-Control-Request-Method': 'GET',
        },
    )
    assert response.status_code == 200
    assert response.headers['access-control-allow-origin'] == 'http://localhost:8001'
    assert response.headers['x-correlation-id']


def test_shipped_openapi_contract_scenarios() -> None:
    client = TestClient(create_app(make_settings(SHIPPED_CONTRACTS), GatewayMetrics()))

    as_json = client.get(
        '/openapi/backend-frontend-api-v1.yaml', headers={'Accept': 'application/json'}
    )
    assert as_json.status_code == 200
    assert re.fullmatch(r'3\.0\.\d+', as_json.json()['openapi'])

    as_yaml = client.get(
        '/openapi/backend-frontend-api-v1.yaml', headers={'Accept': 'application/yaml'}
    )
    assert as_yaml.status_code == 200
    assert as_yaml.text.startswith('openapi:')


def test_shipped_contracts_are_all_listed_and_served() -> None:
    client = TestClient(create_app(make_settings(SHIPPED_CONTRACTS), GatewayMetrics()))
    listing = client.get('/specs').json()
    for key in ('openapi', 'asyncapi', 'protobuf'):
        assert listing[key]
        for resource in listing[key]:
            assert client.get(resource).status_code == 200

    proto = client.get('/protobuf/agent_service.proto').text
    assert 'service AgentService' in proto
    versions = client.get('/versions').json()
    assert versions['version_info']['schema_version'] == '1.0.0'
