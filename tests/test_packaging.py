from pathlib import Path

import pytest

tomllib = pytest.importorskip('tomllib')

PYPROJECT = Path(__file__).resolve().parent.parent / 'pyproject.toml'


def test_metadata_only_points_at_shipped_files():
    project = tomllib.loads(PYPROJECT.read_text())['project']
    assert 'readme' not in project
    assert project['name'] == 'sos-dispatch'
