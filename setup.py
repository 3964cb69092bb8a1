#!/usr/bin/env python3
# =============================================================================
#  lock-verify: setup.py
#
#  Runtime requirements live in requirements.txt; the version lives in
#  lock_verify/__init__.py.
#
#  Typical use:
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
    """Extract ``__version__`` from lock_verify/__init__.py."""
    init = _HERE / "lock_verify" / "__init__.py"
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
    name="lock-verify",
    version=_read_version(),
    description=(
        "Offline verifier for lock traces: detects inconsistent lock "
        "ordering (potential deadlocks) across the threads of a run."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="BSD-3-Clause",
    author="lock-verify contributors",
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "lock_verify",
            "lock_verify.*",
        ],
        exclude=[
            "tests",
            "tests.*",
        ],
    ),
    package_data={
        "lock_verify": ["py.typed"],
    },
    install_requires=_read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "ruff>=0.4",
            "mypy>=1.10",
            "black>=24.0",
            "isort>=5.13",
        ],
    },

    # setuptools creates a platform-appropriate wrapper that calls
    # lock_verify.main:main.
    entry_points={
        "console_scripts": [
            "lock-verify=lock_verify.main:main",
        ],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Software Development :: Debuggers",
        "Typing :: Typed",
    ],
    keywords=[
        "deadlock",
        "lock-order",
        "trace",
        "concurrency",
        "verification",
    ],
    zip_safe=False,
)
