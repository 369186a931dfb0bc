"""YAML loader and writer for threat model files."""

from pathlib import Path
from typing import Union
import yaml
from pydantic import ValidationError

from .exceptions import ModelParseError
from .logging_config import get_logger
from .schemas import Component, DataFlow, ThreatModelGraph, TrustBoundary

logger = get_logger(__name__)

MODEL_SUFFIX = '.threatmodel.yaml'


class ThreatModelParser:
    """Parser for single-file threat models (components, dataFlows, trustBoundaries)."""

    SECTIONS = {
        'components': Component,
        'dataFlows': DataFlow,
        'trustBoundaries': TrustBoundary,
    }

    def __init__(self, model_path: Union[str, Path]):
        self.model_path = Path(model_path)
        self._validate_structure()

    def _validate_structure(self) -> None:
        if not self.model_path.exists():
            raise ModelParseError(f"Threat model file does not exist: {self.model_path}")
        if not self.model_path.is_file():
            raise ModelParseError(f"Threat model path is not a file: {self.model_path}")

    def _load_yaml(self) -> dict:
        try:
            with open(self.model_path, 'r', encoding='utf-8') as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ModelParseError(f"YAML parse error in {self.model_path.name}: {e}")
        if not content:
            raise ModelParseError(f"{self.model_path.name} is empty")
        if not isinstance(content, dict):
            raise ModelParseError(f"{self.model_path.name} must contain a mapping at the top level")
        return content

    def parse(self) -> ThreatModelGraph:
        data = self._load_yaml()

        sections = {}
        for key, model_cls in self.SECTIONS.items():
            items = []
            for index, item in enumerate(data.get(key) or []):
                ref = item.get('id', f'#{index + 1}') if isinstance(item, dict) else f'#{index + 1}'
                try:
                    items.append(model_cls.model_validate(item))
                except ValidationError as e:
                    raise ModelParseError(f"{key} entry '{ref}' validation error: {e}")
            sections[key] = items

        try:
            graph = ThreatModelGraph(
                title=data.get('title', 'Untitled Threat Model'),
                version=str(data.get('version', '1.0')),
                threatActors=data.get('threatActors') or [],
                **sections,
            )
        except ValidationError as e:
            raise ModelParseError(f"Threat model validation error: {e}")

        logger.debug(
            f"Parsed {self.model_path.name}: {len(graph.components)} components, "
            f"{len(graph.dataFlows)} data flows"
        )
        return graph


def load_graph(model_path: Union[str, Path]) -> ThreatModelGraph:
    """Load a threat model graph from a YAML file."""
    return ThreatModelParser(model_path).parse()


def dump_graph(graph: ThreatModelGraph, output_path: Union[str, Path]) -> Path:
    """Write a graph in the same YAML format load_graph reads."""
    output_path = Path(output_path)
    data = graph.model_dump(mode='json', exclude_none=True)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    return output_path


def discover_models(base_path: Union[str, Path], recursive: bool = True) -> list[Path]:
    """Find *.threatmodel.yaml files below a directory, sorted by path."""
    base = Path(base_path).resolve()
    if not base.exists():
        return []
    pattern = f'*{MODEL_SUFFIX}'
    found = base.rglob(pattern) if recursive else base.glob(pattern)
    return sorted(p for p in found if p.is_file())
