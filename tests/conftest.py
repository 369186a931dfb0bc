"""Shared pytest fixtures."""

import logging
from pathlib import Path

import pytest

from threatmap.config import Settings
from threatmap.schemas import Component, DataFlow, ThreatCatalog, ThreatModelGraph, ThreatTemplate, TrustBoundary


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def settings():
    """Settings with defaults only, independent of the environment and any .env file."""
    return Settings(_env_file=None, log_level='WARNING')


@pytest.fixture
def sample_graph():
    """User -> API gateway -> Lambda -> database, with one derived and one declared boundary."""
    return ThreatModelGraph(
        title='Payments Service',
        version='2.0',
        components=[
            Component(id='user', name='Customer', type='user', trustBoundary='Internet'),
            Component(id='api', name='Public API', type='api_gateway', criticality='high'),
            Component(id='fn', name='Payment Handler', type='lambda', criticality='high'),
            Component(id='db', name='Ledger DB', type='database', criticality='critical',
                      dataClassification='confidential'),
        ],
        dataFlows=[
            DataFlow(id='f1', sourceId='user', targetId='api', label='Payment request',
                     protocol='HTTPS', encrypted=True, authenticated=True),
            DataFlow(id='f2', sourceId='api', targetId='fn', label='Invoke',
                     encrypted=True, authenticated=True),
            DataFlow(id='f3', sourceId='fn', targetId='db', label='Ledger writes',
                     protocol='TCP', encrypted=False, authenticated=True),
        ],
        trustBoundaries=[
            TrustBoundary(id='TB-1', name='Production VPC', type='vpc', memberComponentIds=['api', 'fn', 'db']),
        ],
    )


def make_template(**overrides) -> ThreatTemplate:
    """Helper to build a ThreatTemplate with sensible defaults."""
    defaults = dict(
        id='T-001',
        strideCategory='tampering',
        title='Data tampering',
        description='Records in {component} can be modified',
        applicableComponentTypes=['database'],
        likelihood='medium',
        impact='high',
        mitigations=['Integrity checks'],
    )
    defaults.update(overrides)
    return ThreatTemplate(**defaults)


@pytest.fixture
def small_catalog():
    """Three templates: one for databases, one wildcard, one for APIs."""
    return ThreatCatalog(
        name='test',
        version='0.1',
        templates=[
            make_template(
                id='DB-TAMP', likelihood='low', impactCIA='C:Low, I:High, A:Low',
                existingControls='IAM write restrictions', recommendation='Audit logging',
            ),
            make_template(
                id='ANY-REPUD', strideCategory='repudiation', title='Missing audit trail',
                description='Actions on {component} cannot be attributed',
                applicableComponentTypes=['all'], impact='medium',
                mitigations=['Centralized audit logging', 'Integrity checks'],
            ),
            make_template(
                id='API-SPOOF', strideCategory='spoofing', title='Caller impersonation',
                description='Callers of {component} can be impersonated',
                applicableComponentTypes=['api'], likelihood='high', impact='critical',
            ),
        ],
    )


@pytest.fixture
def empty_catalog():
    return ThreatCatalog(name='empty', templates=[])


@pytest.fixture
def template_factory():
    return make_template


DATA_DIR = Path(__file__).parent / 'data'


@pytest.fixture
def terraform_source():
    """Small AWS stack: load balancer, instance, RDS, public S3 bucket, Lambda, open ingress rule."""
    return (DATA_DIR / 'main.tf').read_text(encoding='utf-8')


@pytest.fixture
def openapi_source():
    """OpenAPI 3 document with one unauthenticated operation and a basic-auth scheme."""
    return (DATA_DIR / 'openapi.yaml').read_text(encoding='utf-8')
