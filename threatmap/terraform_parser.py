"""Import components and data flows from Terraform HCL."""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import ImportParseError
from .logging_config import get_logger
from .schemas import Component, DataFlow, ThreatModelGraph, TrustBoundary

logger = get_logger(__name__)


@dataclass
class TerraformResource:
    """A `resource "type" "name" { ... }` block."""
    type: str
    name: str
    provider: str
    config: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)

    @property
    def address(self) -> str:
        return f'{self.type}.{self.name}'


class TerraformParser:
    """
    Extracts resources with lightweight regex parsing (no full HCL grammar).

    Known resource types map to component type, criticality and data
    classification; references between resources become data flows, plus the
    usual load balancer -> compute -> database paths.
    """

    RESOURCE_HEADER = re.compile(r'resource\s+"([^"]+)"\s+"([^"]+)"\s*\{')
    STRING_VALUE = re.compile(r'(\w+)\s*=\s*"([^"]*)"')
    SCALAR_VALUE = re.compile(r'(\w+)\s*=\s*(true|false|\d+)\b')
    LIST_VALUE = re.compile(r'(\w+)\s*=\s*\[([^\]]*)\]')
    EXPRESSION_VALUE = re.compile(r'^\s*(\w+)\s*=\s*([A-Za-z_][\w\-]*(?:\.[\w\-*\[\]]+)+)\s*$', re.MULTILINE)
    REFERENCE = re.compile(r'\b([a-z][a-z0-9]*_[a-z0-9_]+)\.([A-Za-z0-9_-]+)\.[A-Za-z0-9_]+')

    # resource type -> (component type, criticality, data classification)
    COMPONENT_TYPES = {
        # AWS
        'aws_instance': ('service', 'high', 'internal'),
        'aws_lambda_function': ('lambda', 'high', 'internal'),
        'aws_db_instance': ('database', 'critical', 'confidential'),
        'aws_rds_cluster': ('database', 'critical', 'confidential'),
        'aws_dynamodb_table': ('database', 'high', 'confidential'),
        'aws_s3_bucket': ('s3', 'high', 'confidential'),
        'aws_elasticache_cluster': ('cache', 'medium', 'internal'),
        'aws_lb': ('load_balancer', 'critical', 'public'),
        'aws_alb': ('load_balancer', 'critical', 'public'),
        'aws_api_gateway_rest_api': ('api_gateway', 'critical', 'public'),
        'aws_apigatewayv2_api': ('api_gateway', 'critical', 'public'),
        'aws_sqs_queue': ('sqs', 'medium', 'internal'),
        'aws_sns_topic': ('sns', 'medium', 'internal'),
        'aws_cognito_user_pool': ('cognito', 'critical', 'confidential'),
        'aws_kms_key': ('kms', 'critical', 'restricted'),
        'aws_secretsmanager_secret': ('secrets_manager', 'critical', 'restricted'),
        'aws_cloudfront_distribution': ('cloudfront', 'high', 'public'),
        # Azure
        'azurerm_virtual_machine': ('service', 'high', 'internal'),
        'azurerm_function_app': ('function', 'high', 'internal'),
        'azurerm_sql_database': ('database', 'critical', 'confidential'),
        'azurerm_storage_account': ('object_storage', 'high', 'confidential'),
        'azurerm_cosmosdb_account': ('database', 'critical', 'confidential'),
        'azurerm_key_vault': ('secrets', 'critical', 'restricted'),
        'azurerm_application_gateway': ('api_gateway', 'critical', 'public'),
        # GCP
        'google_compute_instance': ('service', 'high', 'internal'),
        'google_cloud_run_service': ('container', 'high', 'internal'),
        'google_sql_database_instance': ('database', 'critical', 'confidential'),
        'google_storage_bucket': ('object_storage', 'high', 'confidential'),
        'google_bigquery_dataset': ('data_warehouse', 'high', 'confidential'),
    }
    DEFAULT_COMPONENT_TYPE = ('service', 'medium', 'internal')

    TECHNOLOGIES = {
        'aws_instance': 'AWS EC2',
        'aws_lambda_function': 'AWS Lambda',
        'aws_db_instance': 'AWS RDS',
        'aws_dynamodb_table': 'AWS DynamoDB',
        'aws_s3_bucket': 'AWS S3',
        'aws_lb': 'AWS ELB',
        'aws_api_gateway_rest_api': 'AWS API Gateway',
        'azurerm_virtual_machine': 'Azure VM',
        'azurerm_function_app': 'Azure Functions',
        'azurerm_sql_database': 'Azure SQL',
        'azurerm_storage_account': 'Azure Blob Storage',
        'google_compute_instance': 'GCE',
        'google_cloud_run_service': 'Cloud Run',
        'google_sql_database_instance': 'Cloud SQL',
        'google_storage_bucket': 'GCS',
    }

    # Network policy resources are inspected for concerns but not drawn as components
    NON_COMPONENT_TYPES = {
        'aws_security_group', 'aws_security_group_rule',
        'azurerm_network_security_group', 'google_compute_firewall',
    }

    def __init__(self):
        self.resources: list[TerraformResource] = []
        self.provider = 'unknown'

    def parse(self, content: str, title: Optional[str] = None) -> ThreatModelGraph:
        self.resources = self.extract_resources(content)
        if not self.resources:
            raise ImportParseError('Invalid Terraform configuration: no resource blocks found')
        self.provider = self._detect_provider(self.resources)

        drawn = [r for r in self.resources if r.type not in self.NON_COMPONENT_TYPES]
        components = [self._component(r) for r in drawn]
        flows = self._data_flows(drawn)
        boundary = TrustBoundary(
            id='TB-1',
            name=f'{self.provider.upper()} account',
            type='cloud_account',
            memberComponentIds=[c.id for c in components],
        )
        logger.info(f"Terraform import: {len(components)} components, {len(flows)} data flows ({self.provider})")
        return ThreatModelGraph(
            title=title or f'Terraform import ({self.provider})',
            components=components,
            dataFlows=flows,
            trustBoundaries=[boundary] if components else [],
        )

    def extract_resources(self, content: str) -> list[TerraformResource]:
        resources = []
        for match in self.RESOURCE_HEADER.finditer(content):
            resource_type, name = match.group(1), match.group(2)
            body = self._block_body(content, match.end())
            if body is None:
                raise ImportParseError(
                    f"Invalid Terraform configuration: unbalanced braces in {resource_type}.{name}"
                )
            resources.append(TerraformResource(
                type=resource_type,
                name=name,
                provider=resource_type.split('_')[0],
                config=self._parse_block(body),
                dependencies=self._extract_dependencies(body),
            ))
        return resources

    @staticmethod
    def _block_body(content: str, start: int) -> Optional[str]:
        depth = 1
        for index in range(start, len(content)):
            char = content[index]
            if char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return content[start:index]
        return None

    def _parse_block(self, body: str) -> dict[str, Any]:
        config: dict[str, Any] = {}
        for key, value in self.EXPRESSION_VALUE.findall(body):
            config[key] = value
        for key, value in self.STRING_VALUE.findall(body):
            config[key] = value
        for key, value in self.SCALAR_VALUE.findall(body):
            if value in ('true', 'false'):
                config[key] = value == 'true'
            else:
                config[key] = int(value)
        for key, value in self.LIST_VALUE.findall(body):
            config[key] = re.findall(r'"([^"]*)"', value)
        return config

    def _extract_dependencies(self, body: str) -> list[str]:
        deps = []
        for resource_type, name in self.REFERENCE.findall(body):
            address = f'{resource_type}.{name}'
            if address not in deps:
                deps.append(address)
        return deps

    @staticmethod
    def _detect_provider(resources: list[TerraformResource]) -> str:
        counts: dict[str, int] = {}
        for resource in resources:
            counts[resource.provider] = counts.get(resource.provider, 0) + 1
        return max(counts, key=counts.get) if counts else 'unknown'

    def _component(self, resource: TerraformResource) -> Component:
        component_type, criticality, classification = self.COMPONENT_TYPES.get(
            resource.type, self.DEFAULT_COMPONENT_TYPE
        )
        technology = self.TECHNOLOGIES.get(
            resource.type,
            f"{resource.provider.upper()} {' '.join(resource.type.split('_')[1:])}",
        )
        return Component(
            id=resource.address,
            name=f'{resource.name} ({resource.type})',
            type=component_type,
            technology=technology,
            criticality=criticality,
            dataClassification=classification,
            description=f"{resource.type.replace('_', ' ').title()} - {resource.name}",
        )

    def _data_flows(self, resources: list[TerraformResource]) -> list[DataFlow]:
        by_address = {r.address: r for r in resources}
        pairs: list[tuple[TerraformResource, TerraformResource, dict]] = []

        for resource in resources:
            for dep in resource.dependencies:
                target = by_address.get(dep)
                if target is None or target is resource:
                    continue
                pairs.append((resource, target, {
                    'protocol': self._infer_protocol(target.type),
                    'dataType': self._infer_data_type(target.type),
                    'encrypted': self._is_encrypted(resource, target),
                }))

        balancers = [r for r in resources if 'lb' in r.type or 'gateway' in r.type]
        compute = [r for r in resources if any(k in r.type for k in ('instance', 'function', 'run'))
                   and not self._is_database(r.type)]
        databases = [r for r in resources if self._is_database(r.type)]

        for lb in balancers:
            for target in compute:
                pairs.append((lb, target, {'protocol': 'HTTPS', 'dataType': 'Request/Response', 'encrypted': True}))
        for source in compute:
            for db in databases:
                pairs.append((source, db, {
                    'protocol': self._database_protocol(db),
                    'dataType': 'Query/Data',
                    'encrypted': True,
                }))

        flows = []
        seen = set()
        for source, target, attrs in pairs:
            key = (source.address, target.address)
            if key in seen:
                continue
            seen.add(key)
            flows.append(DataFlow(
                id=f'flow-{len(flows) + 1}',
                sourceId=source.address,
                targetId=target.address,
                label=attrs['dataType'],
                protocol=attrs['protocol'],
                dataType=attrs['dataType'],
                encrypted=attrs['encrypted'],
                authenticated=True,
            ))
        return flows

    @staticmethod
    def _is_database(resource_type: str) -> bool:
        return any(k in resource_type for k in ('rds', 'db_instance', 'sql', 'dynamo', 'cosmos'))

    @staticmethod
    def _infer_protocol(target_type: str) -> str:
        if 's3' in target_type or 'storage' in target_type:
            return 'HTTPS'
        if 'sqs' in target_type or 'queue' in target_type:
            return 'HTTPS'
        if 'rds' in target_type or 'sql' in target_type or 'db_instance' in target_type:
            return 'TLS/SQL'
        if 'dynamo' in target_type or 'cosmos' in target_type:
            return 'HTTPS'
        return 'TCP'

    @staticmethod
    def _infer_data_type(target_type: str) -> str:
        if 's3' in target_type or 'storage' in target_type:
            return 'Objects/Files'
        if 'queue' in target_type:
            return 'Messages'
        if 'rds' in target_type or 'sql' in target_type or 'db_instance' in target_type:
            return 'SQL Queries'
        if 'dynamo' in target_type or 'cosmos' in target_type:
            return 'Documents'
        return 'Data'

    @staticmethod
    def _is_encrypted(source: TerraformResource, target: TerraformResource) -> bool:
        for resource in (source, target):
            config = resource.config
            if config.get('encrypted') is True or config.get('storage_encrypted') is True:
                return True
            if 'kms_key_id' in config:
                return True
        return False

    @staticmethod
    def _database_protocol(db: TerraformResource) -> str:
        engine = str(db.config.get('engine', '')) + db.type
        if 'mysql' in engine:
            return 'MySQL/TLS'
        if 'postgres' in engine:
            return 'PostgreSQL/TLS'
        if 'sql' in engine:
            return 'SQL/TLS'
        if 'dynamo' in engine or 'cosmos' in engine:
            return 'HTTPS'
        return 'Database/TLS'

    def security_concerns(self) -> list[str]:
        """Misconfigurations visible in the last parsed configuration."""
        concerns = []
        for resource in self.resources:
            config = resource.config
            if resource.type == 'aws_s3_bucket' and config.get('acl') in ('public-read', 'public-read-write'):
                concerns.append(f"S3 bucket '{resource.name}' has public ACL")

            if (any(k in resource.type for k in ('rds', 'db_instance', 's3', 'ebs'))
                    and config.get('encrypted') is not True and config.get('storage_encrypted') is not True):
                concerns.append(f"{resource.type} '{resource.name}' may not have encryption enabled")

            if resource.type == 'aws_security_group_rule':
                if '0.0.0.0/0' in config.get('cidr_blocks', []) and config.get('type') == 'ingress':
                    concerns.append(f"Security group rule '{resource.name}' allows ingress from 0.0.0.0/0")

            if resource.type == 'aws_db_instance' and config.get('publicly_accessible') is True:
                concerns.append(f"RDS instance '{resource.name}' is publicly accessible")
        return concerns


def parse_terraform(content: str, title: Optional[str] = None) -> ThreatModelGraph:
    """Convenience wrapper returning only the graph."""
    return TerraformParser().parse(content, title)
