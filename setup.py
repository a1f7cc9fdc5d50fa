#!/usr/bin/env python3
# =============================================================================
#  psscriptlint: setup.py
#
#  For development:
#      pip install -e ".[dev]"
#      python -m pytest
# =============================================================================

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    """Extract ``__version__`` from the package's ``__init__.py``."""
    init = _HERE / "psscriptlint" / "__init__.py"
    text = init.read_text(encoding="utf-8")
    match = re.search(r'^__version__(?::\s*str)?\s*=\s*"([^"]+)"', text, re.MULTILINE)
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
    name="psscriptlint",
    version=_read_version(),
    description=(
        "Settings resolution, rule dispatch, suppression and correction "
        "merging for PowerShell static analysis."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="MIT",
    author="psscriptlint contributors",
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "psscriptlint",
            "psscriptlint.*",
        ],
        exclude=[
            "tests",
            "tests.*",
        ],
    ),
    package_data={
        "psscriptlint": ["py.typed", "presets/*.psd1"],
    },
    install_requires=_read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "psscriptlint=psscriptlint.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Quality Assurance",
        "Typing :: Typed",
    ],
    keywords=[
        "powershell",
        "static-analysis",
        "linter",
        "psd1",
    ],
    zip_safe=False,
)
