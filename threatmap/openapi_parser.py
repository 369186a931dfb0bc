"""Import an API surface from an OpenAPI (or Swagger) document."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import yaml

from .exceptions import ImportParseError
from .logging_config import get_logger
from .schemas import Component, DataFlow, ThreatModelGraph, TrustBoundary

logger = get_logger(__name__)


@dataclass
class Endpoint:
    path: str
    method: str
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    parameters: list[dict[str, Any]] = field(default_factory=list)
    has_body: bool = False
    security: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return bool(self.security)

    @property
    def label(self) -> str:
        return f'{self.method} {self.path}'


class OpenApiParser:
    """
    Turns an API description into a small threat model graph.

    The API itself becomes one gateway component reached by an External
    Client; every tag used by a write operation becomes a "<tag> Data Store".
    Each operation contributes one client -> API flow and one API -> client
    response flow, authenticated only when the operation (or the document
    default) declares a security requirement.
    """

    METHODS = ('get', 'post', 'put', 'delete', 'patch', 'options', 'head')
    WRITE_METHODS = {'POST', 'PUT', 'PATCH', 'DELETE'}
    SENSITIVE_PARAMS = ('password', 'token', 'secret', 'key')
    DEFAULT_SERVER = 'http://localhost'

    CLIENT_ID = 'external-client'
    API_ID = 'api'

    def __init__(self):
        self.document: dict[str, Any] = {}
        self.servers: list[str] = []
        self.endpoints: list[Endpoint] = []

    def parse(self, content: str, title: Optional[str] = None) -> ThreatModelGraph:
        self.document = self._load(content)
        info = self.document.get('info') or {}
        api_name = str(info.get('title') or 'Unknown API')

        self.servers = self._extract_servers(self.document)
        self.endpoints = self._extract_endpoints(self.document)
        if not self.endpoints:
            logger.warning(f"OpenAPI document '{api_name}' declares no operations")

        encrypted = all(urlparse(s).scheme == 'https' for s in self.servers)
        components = self._components(api_name, info)
        flows = self._data_flows(encrypted)
        boundaries = [
            TrustBoundary(id='TB-1', name='Internet', type='external', memberComponentIds=[self.CLIENT_ID]),
            TrustBoundary(
                id='TB-2',
                name=f'{api_name} backend',
                type='cloud_account',
                memberComponentIds=[c.id for c in components if c.id != self.CLIENT_ID],
            ),
        ]
        logger.info(f"OpenAPI import: {len(self.endpoints)} operations, {len(flows)} data flows")
        return ThreatModelGraph(
            title=title or api_name,
            version=str(info.get('version') or '1.0.0'),
            components=components,
            dataFlows=flows,
            trustBoundaries=boundaries,
        )

    @staticmethod
    def _load(content: str) -> dict[str, Any]:
        try:
            document = yaml.safe_load(content)
        except yaml.YAMLError:
            try:
                document = json.loads(content)
            except json.JSONDecodeError as e:
                raise ImportParseError(f'Invalid OpenAPI specification: {e}')
        if not isinstance(document, dict):
            raise ImportParseError('Invalid OpenAPI specification: expected a mapping at the top level')
        if not any(key in document for key in ('openapi', 'swagger', 'paths')):
            raise ImportParseError(
                'Invalid OpenAPI specification: missing openapi/swagger version and paths',
                details={'keys': sorted(document)},
            )
        return document

    def _extract_servers(self, document: dict) -> list[str]:
        servers = [s.get('url') for s in document.get('servers') or [] if isinstance(s, dict) and s.get('url')]
        if not servers and document.get('host'):
            schemes = document.get('schemes') or ['https']
            servers = [f"{scheme}://{document['host']}{document.get('basePath', '')}" for scheme in schemes]
        return servers or [self.DEFAULT_SERVER]

    def _extract_endpoints(self, document: dict) -> list[Endpoint]:
        endpoints = []
        default_security = document.get('security') or []
        for path, path_item in (document.get('paths') or {}).items():
            if not isinstance(path_item, dict):
                continue
            shared_params = path_item.get('parameters') or []
            for method in self.METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, dict):
                    continue
                # An explicit `security: []` on the operation removes the document default
                requirements = operation['security'] if 'security' in operation else default_security
                endpoints.append(Endpoint(
                    path=path,
                    method=method.upper(),
                    operation_id=operation.get('operationId'),
                    summary=operation.get('summary'),
                    parameters=[p for p in shared_params + (operation.get('parameters') or []) if isinstance(p, dict)],
                    has_body='requestBody' in operation or any(
                        p.get('in') == 'body' for p in operation.get('parameters') or [] if isinstance(p, dict)
                    ),
                    security=self._security_schemes(requirements),
                    tags=[str(t) for t in operation.get('tags') or []],
                ))
        return endpoints

    @staticmethod
    def _security_schemes(requirements: list) -> list[str]:
        # `[{}]` marks anonymous access as allowed
        if not requirements or any(not r for r in requirements):
            return []
        return [name for requirement in requirements for name in requirement]

    @staticmethod
    def store_id(tag: str) -> str:
        return 'store-' + (re.sub(r'[^a-z0-9]+', '-', tag.lower()).strip('-') or 'default')

    def _write_tags(self) -> list[str]:
        tags: dict[str, str] = {}
        for endpoint in self.endpoints:
            if endpoint.method not in self.WRITE_METHODS:
                continue
            for tag in endpoint.tags:
                tags.setdefault(self.store_id(tag), tag)
        return list(tags.values())

    def _components(self, api_name: str, info: dict) -> list[Component]:
        hosts = ', '.join(urlparse(s).hostname or s for s in self.servers)
        components = [
            Component(
                id=self.CLIENT_ID,
                name='External Client',
                type='external_entity',
                criticality='medium',
                dataClassification='public',
                description='Caller of the published API',
            ),
            Component(
                id=self.API_ID,
                name=api_name,
                type='api_gateway',
                technology='REST API',
                criticality='high',
                dataClassification='internal',
                description=info.get('description') or f'{api_name} served at {hosts}',
            ),
        ]
        for tag in self._write_tags():
            components.append(Component(
                id=self.store_id(tag),
                name=f'{tag} Data Store',
                type='datastore',
                criticality='high',
                dataClassification='confidential',
                description=f'Data store for {tag}',
            ))
        return components

    def _data_flows(self, encrypted: bool) -> list[DataFlow]:
        flows = []
        for endpoint in self.endpoints:
            flows.append(DataFlow(
                id=f'flow-{len(flows) + 1}',
                sourceId=self.CLIENT_ID,
                targetId=self.API_ID,
                label=endpoint.label,
                protocol='HTTPS' if encrypted else 'HTTP',
                dataType='Request Data' if endpoint.has_body else 'Query',
                encrypted=encrypted,
                authenticated=endpoint.authenticated,
            ))
            if endpoint.method in self.WRITE_METHODS:
                for tag in endpoint.tags:
                    flows.append(DataFlow(
                        id=f'flow-{len(flows) + 1}',
                        sourceId=self.API_ID,
                        targetId=self.store_id(tag),
                        label=f'{endpoint.label} ({tag})',
                        protocol='Internal',
                        dataType='Entity Data',
                        encrypted=True,
                        authenticated=True,
                    ))
            flows.append(DataFlow(
                id=f'flow-{len(flows) + 1}',
                sourceId=self.API_ID,
                targetId=self.CLIENT_ID,
                label=f'{endpoint.label} response',
                protocol='HTTPS' if encrypted else 'HTTP',
                dataType='Response Data',
                encrypted=encrypted,
                authenticated=endpoint.authenticated,
            ))
        return flows

    def security_concerns(self) -> list[str]:
        """Weaknesses visible in the last parsed document."""
        concerns = []
        unauthenticated = [e for e in self.endpoints if not e.authenticated]
        if unauthenticated:
            concerns.append(f'{len(unauthenticated)} endpoints have no security requirements defined')

        for endpoint in self.endpoints:
            for param in endpoint.parameters:
                name = str(param.get('name', ''))
                if param.get('in') == 'query' and any(s in name.lower() for s in self.SENSITIVE_PARAMS):
                    concerns.append(f"Sensitive parameter '{name}' exposed in query string at {endpoint.path}")

        for server in self.servers:
            if server.startswith('http://') and 'localhost' not in server:
                concerns.append(f'Non-HTTPS server defined: {server}')

        components = self.document.get('components') or {}
        schemes = components.get('securitySchemes') or self.document.get('securityDefinitions') or {}
        for name, scheme in schemes.items():
            if not isinstance(scheme, dict):
                continue
            if (scheme.get('type') == 'http' and str(scheme.get('scheme', '')).lower() == 'basic') \
                    or scheme.get('type') == 'basic':
                concerns.append(f"Basic authentication used in security scheme '{name}'")
        return concerns


def parse_openapi(content: str, title: Optional[str] = None) -> ThreatModelGraph:
    """Convenience wrapper returning only the graph."""
    return OpenApiParser().parse(content, title)
