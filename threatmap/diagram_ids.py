"""Stable, type-prefixed diagram identifiers (D-<PREFIX><NN>)."""

import re

from .logging_config import get_logger
from .schemas import AnalyzedThreat, TargetKind, ThreatModelGraph

logger = get_logger(__name__)


def type_key(component_type: str) -> str:
    """'API Gateway', 'api-gateway' and 'api_gateway' all map to 'api_gateway'."""
    return re.sub(r'[^a-z0-9]+', '_', (component_type or '').lower()).strip('_')


class DiagramIdAllocator:
    """
    Assigns diagram IDs to components and data flows.

    Pre-assigned IDs are kept as they are. New IDs for a prefix continue after the
    highest index already used with that prefix and never reuse a taken ID.
    """

    PREFIXES = {
        # Users and external parties
        'user': 'U',
        'external': 'EXT',
        'external_entity': 'EXT',
        'third_party': 'TP',
        'data_provider': 'PRV',
        # Compute
        'api_gateway': 'APGW',
        'application': 'APP',
        'lambda': 'LMB',
        'function': 'FN',
        'container': 'CTR',
        'service': 'SVC',
        # Identity
        'authorizer': 'AUTH',
        'identity_provider': 'IDP',
        'cognito': 'COG',
        'iam': 'IAM',
        # Storage
        'database': 'DB',
        'dynamodb': 'DDB',
        'object_storage': 'S3',
        's3': 'S3',
        'cache': 'CACHE',
        'data_warehouse': 'DW',
        'snowflake': 'SNOW',
        # Messaging
        'queue': 'Q',
        'sqs': 'SQS',
        'sns': 'SNS',
        'notification': 'NOTIF',
        'stream': 'STR',
        'event_bus': 'EVT',
        'eventbridge': 'EVB',
        # Security
        'secrets': 'SEC',
        'secrets_manager': 'SEC',
        'encryption': 'KMS',
        'kms': 'KMS',
        'waf': 'WAF',
        # Network
        'vpc': 'VPC',
        'cdn': 'CDN',
        'cloudfront': 'CF',
        'route53': 'R53',
        'load_balancer': 'LB',
        # Data pipeline tooling
        'fivetran': 'FVT',
        'dbt': 'DBT',
        'tableau': 'TBL',
    }

    FALLBACK_PREFIX = 'CMP'
    FLOW_PREFIX = 'DF'

    def prefix_for(self, component_type: str) -> str:
        return self.PREFIXES.get(type_key(component_type), self.FALLBACK_PREFIX)

    def allocate(self, graph: ThreatModelGraph) -> ThreatModelGraph:
        """Return a copy of the graph with every component and flow carrying a diagram ID."""
        used = {item.diagramId for item in [*graph.components, *graph.dataFlows] if item.diagramId}
        counters: dict[str, int] = {}

        components = []
        for component in graph.components:
            if component.diagramId:
                components.append(component.model_copy())
                continue
            diagram_id = self._next_id(self.prefix_for(component.type), counters, used)
            components.append(component.model_copy(update={'diagramId': diagram_id}))

        flows = []
        for flow in graph.dataFlows:
            if flow.diagramId:
                flows.append(flow.model_copy())
                continue
            flows.append(flow.model_copy(update={'diagramId': self._next_id(self.FLOW_PREFIX, counters, used)}))

        logger.debug(f"Allocated diagram ids; {len(used)} in use")
        return graph.model_copy(update={'components': components, 'dataFlows': flows})

    def annotate_threats(self, threats: list[AnalyzedThreat], graph: ThreatModelGraph) -> list[AnalyzedThreat]:
        """Return threat copies carrying the diagram ID of the component or flow they target."""
        lookup = {(TargetKind.COMPONENT, c.id): c.diagramId for c in graph.components}
        lookup.update({(TargetKind.DATA_FLOW, f.id): f.diagramId for f in graph.dataFlows})
        return [
            threat.model_copy(update={'diagramId': lookup.get((threat.targetKind, threat.targetId))})
            for threat in threats
        ]

    def _next_id(self, prefix: str, counters: dict[str, int], used: set[str]) -> str:
        if prefix not in counters:
            counters[prefix] = self._max_index(prefix, used)
        while True:
            counters[prefix] += 1
            candidate = f'D-{prefix}{counters[prefix]:02d}'
            if candidate not in used:
                used.add(candidate)
                return candidate

    @staticmethod
    def _max_index(prefix: str, used: set[str]) -> int:
        pattern = re.compile(rf'^D-{re.escape(prefix)}(\d+)$')
        indexes = [int(m.group(1)) for m in map(pattern.match, used) if m]
        return max(indexes, default=0)
