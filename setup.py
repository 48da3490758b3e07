#!/usr/bin/env python3
# =============================================================================
#  schema-fk-checker — setup.py
#
#  The version lives in schema_fk_checker/__init__.py and the runtime
#  requirements in requirements.txt; both are read from there so each has
#  a single source of truth.
#
#  For development:
#      pip install -e ".[dev]"
#      python -m pytest
# =============================================================================

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

# ---------------------------------------------------------------------------
#  Read version from the package so we have a single source of truth.
# ---------------------------------------------------------------------------
_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    """Extract ``__version__`` from schema_fk_checker/__init__.py."""
    init = _HERE / "schema_fk_checker" / "__init__.py"
    text = init.read_text(encoding="utf-8")
    match = re.search(r'^__version__\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if match:
        return match.group(1)
    return "0.0.0"


def _read_long_description() -> str:
    """Read README.md for the long description."""
    readme = _HERE / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


def _read_requirements() -> list[str]:
    """Read requirements.txt if it exists."""
    req_file = _HERE / "requirements.txt"
    if req_file.exists():
        lines = req_file.read_text(encoding="utf-8").splitlines()
        return [
            ln.strip()
            for ln in lines
            if ln.strip() and not ln.strip().startswith("#")
        ]
    return []


setup(
    name="schema-fk-checker",
    version=_read_version(),
    description=(
        "Finds integer foreign-key columns in Rails-style schema scripts "
        "that reference bigint primary keys."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="MIT",
    author="schema-fk-checker contributors",
    python_requires=">=3.9",
    packages=find_packages(
        include=[
            "schema_fk_checker",
            "schema_fk_checker.*",
        ],
        exclude=[
            "tests",
            "tests.*",
        ],
    ),
    install_requires=_read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },

    # setuptools creates a platform-appropriate wrapper that calls
    # schema_fk_checker.main:main
    entry_points={
        "console_scripts": [
            "schema-fk=schema_fk_checker.main:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Database",
    ],
    keywords=[
        "rails",
        "schema",
        "foreign-key",
        "bigint",
        "lint",
        "static-analysis",
    ],
    zip_safe=False,
)
