#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Policy Table Jobs - Setup Configuration
Installs the `policy-jobs` CLI and the config / policy_jobs packages.
"""

from setuptools import setup, find_packages
from pathlib import Path

HERE = Path(__file__).parent


def read_requirements(filename: str):
    """Non-empty, non-comment lines of a requirements file."""
    path = HERE / filename
    if not path.exists():
        return []
    return [
        line.strip()
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


test_requirements = [
    "pytest>=7.4.0",
    "pytest-asyncio>=0.21.0",
    "pytest-cov>=4.1.0",
]

setup(
    name="policy-table-jobs",
    version="1.0.0",
    description="Serialized policy table render jobs with adaptive status polling and idempotent publishing",
    author="Policy Table Team",
    python_requires=">=3.9",
    packages=find_packages(include=["config", "policy_jobs", "policy_jobs.*"]),
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "dev": test_requirements,
        "test": test_requirements,
    },
    entry_points={
        "console_scripts": [
            "policy-jobs=policy_jobs.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="policy table render queue polling batch relay",
)
