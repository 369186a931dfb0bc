"""Settings, logging and exception hierarchy tests."""

import logging

import pytest

from threatmap.config import Settings
from threatmap.exceptions import (
    CatalogError, ImportParseError, ModelParseError, RenderError, ScoringError, ThreatMapError, ValidationError,
)
from threatmap.logging_config import get_logger, setup_logging


def test_defaults(settings):
    assert settings.layout_columns == 6
    assert (settings.cell_width, settings.cell_height) == (180, 100)
    assert settings.default_threat_actors == ['External Attacker', 'Malicious Insider']
    assert settings.dread_scoring is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('THREATMAP_LAYOUT_COLUMNS', '3')
    monkeypatch.setenv('THREATMAP_DEFAULT_THREAT_ACTORS', '["Nation State"]')
    settings = Settings(_env_file=None)
    assert settings.layout_columns == 3
    assert settings.default_threat_actors == ['Nation State']


def test_layout_columns_must_be_positive():
    with pytest.raises(ValueError):
        Settings(_env_file=None, layout_columns=0)


def test_setup_logging_installs_single_handler(tmp_path):
    log_file = tmp_path / 'threatmap.log'
    setup_logging('debug', str(log_file))
    setup_logging('warning')

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1


def test_get_logger_drops_package_prefix():
    assert get_logger('threatmap.stride').name == 'stride'
    assert get_logger('other.module').name == 'other.module'


@pytest.mark.parametrize('error_class', [
    CatalogError, ImportParseError, ModelParseError, RenderError, ScoringError, ValidationError,
])
def test_every_error_is_a_threatmap_error(error_class):
    error = error_class('boom')
    assert isinstance(error, ThreatMapError)
    assert error.message == 'boom'
    assert error.details == {}


def test_validation_error_carries_missing_ids():
    error = ValidationError('bad graph', missing=['a', 'b'], details={'errors': ['x']})
    assert error.missing == ['a', 'b']
    assert error.details['errors'] == ['x']
