"""Shared fixtures."""

import pytest

from cardmaker.domain.models import TemplateConfig, default_template


@pytest.fixture
def template() -> TemplateConfig:
    return default_template()


@pytest.fixture
def blank_template() -> TemplateConfig:
    """Default template with every default text emptied."""
    tpl = default_template()
    for layer in tpl.layers:
        layer.en.default_text = ""
        layer.ar.default_text = ""
    return tpl
