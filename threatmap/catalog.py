"""Loading and type matching for threat-template catalogs."""

import re
from pathlib import Path
from typing import Optional, Union
import yaml
from pydantic import ValidationError as PydanticValidationError

from .exceptions import CatalogError
from .logging_config import get_logger
from .schemas import ThreatCatalog, ThreatTemplate

logger = get_logger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / 'data' / 'stride-catalog.yaml'

WILDCARD_TYPE = 'all'


def normalize_type(value: str) -> str:
    """Lowercase and drop non-alphanumerics, so 'web_app', 'Web-App' and 'WebApp' compare equal."""
    return re.sub(r'[^a-z0-9]', '', (value or '').lower())


def template_matches(template: ThreatTemplate, component_type: str) -> bool:
    normalized = normalize_type(component_type)
    for applicable in template.applicableComponentTypes:
        if applicable.lower() == WILDCARD_TYPE:
            return True
        needle = normalize_type(applicable)
        if needle and needle in normalized:
            return True
    return False


def matching_templates(catalog: ThreatCatalog, component_type: str) -> list[ThreatTemplate]:
    """Templates applicable to a component type, in catalog order."""
    return [t for t in catalog.templates if template_matches(t, component_type)]


def load_catalog(path: Optional[Union[str, Path]] = None) -> ThreatCatalog:
    """Load and validate a catalog YAML file; the packaged default when no path is given."""
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    try:
        with open(catalog_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise CatalogError(f"Cannot read catalog {catalog_path}: {e}")
    except yaml.YAMLError as e:
        raise CatalogError(f"YAML parse error in catalog {catalog_path}: {e}")

    if not isinstance(data, dict) or not data.get('templates'):
        raise CatalogError(f"Catalog {catalog_path} has no templates")

    try:
        catalog = ThreatCatalog(**data)
    except PydanticValidationError as e:
        raise CatalogError(f"Catalog validation error in {catalog_path}: {e}")

    ids = [t.id for t in catalog.templates]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise CatalogError(f"Duplicate template ids in {catalog_path}: {', '.join(duplicates)}")

    logger.debug(f"Loaded catalog '{catalog.name}' v{catalog.version} with {len(catalog.templates)} templates")
    return catalog
