"""threatmap - Command Line Interface."""

import json
import sys
from pathlib import Path
from typing import Optional
import click

from . import __version__
from .catalog import load_catalog
from .config import get_settings
from .exceptions import ThreatMapError
from .graph import ComponentGraph
from .logging_config import setup_logging
from .openapi_parser import OpenApiParser
from .parser import MODEL_SUFFIX, dump_graph, load_graph
from .pipeline import ThreatModelPipeline
from .renderers import DiagramFormat
from .schemas import Component, DataFlow, ThreatModelGraph, TrustBoundary
from .terraform_parser import TerraformParser


def _fail(action: str, error: ThreatMapError):
    click.echo(click.style(f'{action}: {error}', fg='red'), err=True)
    for problem in error.details.get('errors', []):
        click.echo(f'  - {problem}', err=True)
    sys.exit(1)


def _pipeline(ctx: click.Context, dread: Optional[bool] = None) -> ThreatModelPipeline:
    catalog_path = ctx.obj.get('catalog')
    catalog = load_catalog(catalog_path) if catalog_path else None
    return ThreatModelPipeline(catalog=catalog, settings=ctx.obj['settings'], dread=dread)


def _write_or_echo(text: str, output: str, message: str):
    if output:
        Path(output).write_text(text, encoding='utf-8')
        click.echo(click.style(f'{message}: {output}', fg='green'))
    else:
        click.echo(text)


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level (defaults to THREATMAP_LOG_LEVEL or INFO)')
@click.option('--catalog', type=click.Path(exists=True, dir_okay=False), help='Threat template catalog YAML')
@click.pass_context
def cli(ctx: click.Context, log_level: str, catalog: str):
    """threatmap - STRIDE threat model synthesis, diagrams and risk registers."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level, settings.log_file or None)
    ctx.ensure_object(dict)
    ctx.obj['settings'] = settings
    ctx.obj['catalog'] = catalog


@cli.command()
@click.argument('model_path', type=click.Path(exists=True, dir_okay=False))
def validate(model_path: str):
    """Validate a threat model file."""
    try:
        graph = ComponentGraph.build(load_graph(model_path))
    except ThreatMapError as e:
        _fail('Validation failed', e)

    click.echo(click.style('Validation successful!', fg='green'))
    click.echo(f'  Model: {graph.model.title}')
    click.echo(f'  Version: {graph.model.version}')
    click.echo(f'  Components: {len(graph.components)}')
    click.echo(f'  Data Flows: {len(graph.data_flows)}')
    click.echo(f'  Trust Boundaries: {len(graph.trust_boundaries)}')


@cli.command()
@click.argument('model_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--json', 'as_json', is_flag=True, help='Print threats and summary as JSON')
@click.option('--dread', is_flag=True, help='Add DREAD ratings (always on when THREATMAP_DREAD_SCORING is set)')
@click.pass_context
def analyze(ctx: click.Context, model_path: str, as_json: bool, dread: bool):
    """Enumerate STRIDE threats and risk levels for a threat model."""
    try:
        result = _pipeline(ctx, dread or None).generate(load_graph(model_path))
    except ThreatMapError as e:
        _fail('Analysis failed', e)

    if as_json:
        click.echo(json.dumps({
            'title': result.graph.model.title,
            'summary': result.summary.model_dump(mode='json'),
            'threats': [t.model_dump(mode='json') for t in result.threats],
        }, indent=2))
        return

    click.echo(click.style(f'{result.graph.model.title}: {result.summary.total} threats', bold=True))
    colors = {'critical': 'red', 'high': 'yellow', 'medium': 'cyan', 'low': 'green'}
    for level, count in result.summary.byRiskLevel.items():
        click.echo(click.style(f'  {level.title():<9} {count}', fg=colors.get(level)))
    click.echo()
    for threat in result.threats:
        dread_text = f' DREAD {threat.dread.score} {threat.dread.level.value}' if threat.dread else ''
        click.echo(
            f'  [{threat.diagramId}] {threat.riskLevel.value.upper():<8} '
            f'{threat.strideCategory.label}: {threat.title} ({threat.riskScore}){dread_text}'
        )


@cli.command()
@click.argument('model_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice([f.value for f in DiagramFormat]), default='mermaid')
@click.option('--output', '-o', type=click.Path(), help='Output file path (prints to stdout when omitted)')
@click.pass_context
def diagram(ctx: click.Context, model_path: str, output_format: str, output: str):
    """Render an annotated data flow diagram."""
    try:
        pipeline = _pipeline(ctx)
        result = pipeline.generate(load_graph(model_path))
        text = pipeline.render(result, output_format)
    except ThreatMapError as e:
        _fail('Failed to generate diagram', e)
    _write_or_echo(text, output, 'Diagram generated')


@cli.command('attack-tree')
@click.argument('model_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(['mermaid', 'dot', 'text']), default='mermaid')
@click.option('--target', '-t', default=None, help='Component or data flow id to limit the tree to')
@click.option('--output', '-o', type=click.Path(), help='Output file path (prints to stdout when omitted)')
@click.pass_context
def attack_tree(ctx: click.Context, model_path: str, output_format: str, target: str, output: str):
    """Render an attack tree of the analyzed threats."""
    try:
        pipeline = _pipeline(ctx)
        generator = pipeline.attack_tree(pipeline.generate(load_graph(model_path)))
        if output_format == 'dot':
            text = generator.to_dot(target)
        elif output_format == 'text':
            text = generator.to_text(target)
        else:
            text = generator.to_mermaid(target)
    except ThreatMapError as e:
        _fail('Failed to generate attack tree', e)
    _write_or_echo(text, output, 'Attack tree generated')


@cli.command()
@click.argument('model_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(['xlsx', 'csv']), default='xlsx')
@click.option('--output', '-o', type=click.Path(), required=True, help='Output file path')
@click.pass_context
def export(ctx: click.Context, model_path: str, output_format: str, output: str):
    """Export the threat register as an XLSX workbook or CSV table."""
    try:
        pipeline = _pipeline(ctx)
        result = pipeline.generate(load_graph(model_path))
    except ThreatMapError as e:
        _fail('Export failed', e)

    exporter = pipeline.exporter(result)
    if output_format == 'csv':
        output_file = exporter.save_csv(output)
    else:
        output_file = exporter.save(output)
    click.echo(click.style('Export complete!', fg='green'))
    click.echo(f'  Output: {output_file}')
    click.echo(f'  Threats: {len(result.threats)}')


def _report_import(graph: ThreatModelGraph, output: str, concerns: list[str]):
    try:
        ComponentGraph.validate(graph)
    except ThreatMapError as e:
        _fail('Imported model is invalid', e)
    output_file = dump_graph(graph, output)
    click.echo(click.style('Import complete!', fg='green'))
    click.echo(f'  Output: {output_file}')
    click.echo(f'  Components: {len(graph.components)}')
    click.echo(f'  Data Flows: {len(graph.dataFlows)}')
    if concerns:
        click.echo(click.style(f'\nSecurity concerns ({len(concerns)}):', fg='yellow'))
        for concern in concerns:
            click.echo(f'  - {concern}')


@cli.command('import-terraform')
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', type=click.Path(), required=True, help=f'Model file to write (*{MODEL_SUFFIX})')
@click.option('--title', '-t', default=None, help='Title for the generated model')
def import_terraform(source: str, output: str, title: str):
    """Build a threat model from Terraform resources."""
    parser = TerraformParser()
    try:
        graph = parser.parse(Path(source).read_text(encoding='utf-8'), title)
    except ThreatMapError as e:
        _fail('Terraform import failed', e)
    _report_import(graph, output, parser.security_concerns())


@cli.command('import-openapi')
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', type=click.Path(), required=True, help=f'Model file to write (*{MODEL_SUFFIX})')
@click.option('--title', '-t', default=None, help='Title for the generated model')
def import_openapi(source: str, output: str, title: str):
    """Build a threat model from an OpenAPI document."""
    parser = OpenApiParser()
    try:
        graph = parser.parse(Path(source).read_text(encoding='utf-8'), title)
    except ThreatMapError as e:
        _fail('OpenAPI import failed', e)
    _report_import(graph, output, parser.security_concerns())


@cli.command()
@click.argument('model_path', type=click.Path())
@click.option('--title', '-t', default='New Threat Model', help='Title for the threat model')
def init(model_path: str, title: str):
    """Create a starter threat model file."""
    path = Path(model_path)
    if path.exists():
        click.echo(click.style(f'File already exists: {model_path}', fg='red'), err=True)
        sys.exit(1)

    starter = ThreatModelGraph(
        title=title,
        components=[
            Component(id='user', name='User', type='user', trustBoundary='Internet'),
            Component(id='web', name='Web Application', type='process', criticality='high'),
            Component(id='db', name='Database', type='database', criticality='critical',
                      dataClassification='confidential'),
        ],
        dataFlows=[
            DataFlow(id='f1', sourceId='user', targetId='web', label='HTTPS requests',
                     protocol='HTTPS', encrypted=True, authenticated=True),
            DataFlow(id='f2', sourceId='web', targetId='db', label='SQL queries', protocol='TCP'),
        ],
        trustBoundaries=[
            TrustBoundary(id='TB-1', name='Application VPC', type='vpc', memberComponentIds=['web', 'db']),
        ],
    )
    dump_graph(starter, path)

    click.echo(click.style('Threat model initialized successfully!', fg='green'))
    click.echo(f'  Location: {path}')
    click.echo('\nNext steps:')
    click.echo(f'  1. Describe your components, data flows and trust boundaries in {path.name}')
    click.echo(f'  2. Run: threatmap validate {model_path}')
    click.echo(f'  3. Run: threatmap diagram {model_path} -f svg -o dfd.svg')
    click.echo(f'  4. Run: threatmap export {model_path} -o threats.xlsx')


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()
