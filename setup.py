#!/usr/bin/env python3
"""
TTL-Cache Setup Script
======================
Allows installation of the ttl-cache package.

Usage:
    pip install -e .           # Development install
    pip install -e ".[test]"   # Development install with test tools
    pip install .              # Regular install
"""

from setuptools import setup, find_packages

setup(
    name="ttl-cache",
    version="1.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "ttl-cache=ttl_cache.cli:main",
        ],
    },
)
