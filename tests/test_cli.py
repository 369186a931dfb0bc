"""Command line tests using click's CliRunner."""

import json

import pytest
from click.testing import CliRunner
from openpyxl import load_workbook

from threatmap.cli import cli
from threatmap.parser import dump_graph, load_graph
from threatmap.schemas import DataFlow


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def model_file(sample_graph, tmp_path):
    return str(dump_graph(sample_graph, tmp_path / 'payments.threatmodel.yaml'))


def invoke(runner, *args):
    return runner.invoke(cli, ['--log-level', 'ERROR', *args])


def test_init_then_validate(runner, tmp_path):
    path = tmp_path / 'new.threatmodel.yaml'

    result = invoke(runner, 'init', str(path), '--title', 'Checkout')
    assert result.exit_code == 0
    assert 'initialized successfully' in result.output
    assert load_graph(path).title == 'Checkout'

    result = invoke(runner, 'validate', str(path))
    assert result.exit_code == 0
    assert 'Validation successful!' in result.output
    assert 'Components: 3' in result.output


def test_init_refuses_to_overwrite(runner, model_file):
    result = invoke(runner, 'init', model_file)
    assert result.exit_code == 1
    assert 'already exists' in result.output


def test_validate_reports_every_problem(runner, sample_graph, tmp_path):
    sample_graph.dataFlows.append(DataFlow(id='f9', sourceId='ghost', targetId='nowhere'))
    path = dump_graph(sample_graph, tmp_path / 'broken.threatmodel.yaml')

    result = invoke(runner, 'validate', str(path))
    assert result.exit_code == 1
    assert 'Validation failed' in result.output
    assert 'ghost' in result.output
    assert 'nowhere' in result.output


def test_analyze_json(runner, model_file):
    result = invoke(runner, 'analyze', model_file, '--json')
    assert result.exit_code == 0

    data = json.loads(result.output)
    assert data['title'] == 'Payments Service'
    assert data['summary']['total'] == len(data['threats'])
    assert {t['diagramId'] for t in data['threats']} >= {'D-DB01', 'D-DF03'}


def test_analyze_text(runner, model_file):
    result = invoke(runner, 'analyze', model_file)
    assert result.exit_code == 0
    assert 'Payments Service:' in result.output
    assert '[D-DF03] CRITICAL' in result.output


@pytest.mark.parametrize('fmt, marker', [
    ('mermaid', 'flowchart LR'),
    ('plantuml', '@startuml'),
    ('svg', '<svg'),
    ('dot', 'digraph'),
])
def test_diagram_to_stdout(runner, model_file, fmt, marker):
    result = invoke(runner, 'diagram', model_file, '-f', fmt)
    assert result.exit_code == 0
    assert marker in result.output
    assert 'D-DB01' in result.output


def test_diagram_to_file(runner, model_file, tmp_path):
    output = tmp_path / 'dfd.svg'
    result = invoke(runner, 'diagram', model_file, '-f', 'svg', '-o', str(output))
    assert result.exit_code == 0
    assert output.read_text(encoding='utf-8').startswith('<?xml')


def test_diagram_rejects_unknown_format(runner, model_file):
    result = invoke(runner, 'diagram', model_file, '-f', 'png')
    assert result.exit_code == 2


def test_export_xlsx_and_csv(runner, model_file, tmp_path):
    xlsx = tmp_path / 'threats.xlsx'
    result = invoke(runner, 'export', model_file, '-o', str(xlsx))
    assert result.exit_code == 0
    assert load_workbook(xlsx).sheetnames[0] == 'Threats'

    csv_path = tmp_path / 'threats.csv'
    result = invoke(runner, 'export', model_file, '-f', 'csv', '-o', str(csv_path))
    assert result.exit_code == 0
    assert csv_path.read_text(encoding='utf-8').startswith('Diagram ID,')


def test_custom_catalog(runner, model_file, tmp_path):
    catalog = tmp_path / 'catalog.yaml'
    catalog.write_text(
        'templates:\n'
        '  - id: ONLY-1\n'
        '    strideCategory: tampering\n'
        '    title: Only threat\n'
        '    description: d\n'
        '    applicableComponentTypes: [database]\n'
        '    likelihood: low\n'
        '    impact: low\n'
    )
    result = invoke(runner, '--catalog', str(catalog), 'analyze', model_file, '--json')
    assert result.exit_code == 0
    templates = {t['templateId'] for t in json.loads(result.output)['threats']}
    assert templates == {'ONLY-1', None}


def test_bad_catalog_fails_cleanly(runner, model_file, tmp_path):
    catalog = tmp_path / 'catalog.yaml'
    catalog.write_text('templates: []\n')
    result = invoke(runner, '--catalog', str(catalog), 'analyze', model_file)
    assert result.exit_code == 1
    assert 'no templates' in result.output


def test_import_terraform(runner, tmp_path, terraform_source):
    source = tmp_path / 'main.tf'
    source.write_text(terraform_source)
    output = tmp_path / 'infra.threatmodel.yaml'

    result = invoke(runner, 'import-terraform', str(source), '-o', str(output))
    assert result.exit_code == 0
    assert 'Components: 5' in result.output
    assert 'publicly accessible' in result.output
    assert len(load_graph(output).dataFlows) == 5


def test_import_openapi(runner, tmp_path, openapi_source):
    source = tmp_path / 'openapi.yaml'
    source.write_text(openapi_source)
    output = tmp_path / 'api.threatmodel.yaml'

    result = invoke(runner, 'import-openapi', str(source), '-o', str(output), '--title', 'Orders')
    assert result.exit_code == 0
    assert 'Basic authentication' in result.output
    assert load_graph(output).title == 'Orders'


def test_import_failure_exits_nonzero(runner, tmp_path):
    source = tmp_path / 'empty.tf'
    source.write_text('# nothing here\n')
    result = invoke(runner, 'import-terraform', str(source), '-o', str(tmp_path / 'out.yaml'))
    assert result.exit_code == 1
    assert 'Terraform import failed' in result.output


def test_analyze_with_dread(runner, model_file):
    result = invoke(runner, 'analyze', model_file, '--json', '--dread')
    assert result.exit_code == 0

    threats = json.loads(result.output)['threats']
    assert all(0 <= t['dread']['score'] <= 10 for t in threats)
    assert all(set(t['dread']['factors']) == {
        'damage', 'reproducibility', 'exploitability', 'affectedUsers', 'discoverability'
    } for t in threats)


def test_analyze_without_dread(runner, model_file):
    result = invoke(runner, 'analyze', model_file, '--json')
    assert all(t['dread'] is None for t in json.loads(result.output)['threats'])

    result = invoke(runner, 'analyze', model_file, '--dread')
    assert ' DREAD ' in result.output


@pytest.mark.parametrize('fmt, marker', [
    ('mermaid', 'graph LR'),
    ('dot', 'digraph attack_tree'),
    ('text', '[G] Compromise: Payments Service'),
])
def test_attack_tree_formats(runner, model_file, fmt, marker):
    result = invoke(runner, 'attack-tree', model_file, '-f', fmt)
    assert result.exit_code == 0
    assert marker in result.output


def test_attack_tree_for_one_target(runner, model_file, tmp_path):
    output = tmp_path / 'db-tree.txt'
    result = invoke(runner, 'attack-tree', model_file, '-f', 'text', '-t', 'db', '-o', str(output))
    assert result.exit_code == 0
    assert 'Attack tree generated' in result.output
    assert output.read_text().startswith('[T] Compromise D-DB01: Ledger DB')


def test_attack_tree_unknown_target(runner, model_file):
    result = invoke(runner, 'attack-tree', model_file, '-t', 'ghost')
    assert result.exit_code == 1
    assert 'Failed to generate attack tree' in result.output
