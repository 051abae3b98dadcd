# -*- coding: utf-8 -*-
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_pyproject_declares_packages_without_readme():
    text = (ROOT / 'pyproject.toml').read_text(encoding='utf-8')
    assert 'name = "archive-borrow-service"' in text
    assert 'readme' not in text
    assert 'SPEC_FULL' not in text
