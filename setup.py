#!/usr/bin/env python3
"""
Setup script for native-vault
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="native-vault",
    version="1.0.0",
    author="Tyler Zervas",
    author_email="tz-dev@vectorweight.com",
    description="Store secrets in the operating system's native credential vault",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security",
        "Topic :: System :: Systems Administration :: Authentication/Directory",
    ],
    python_requires=">=3.11",
    install_requires=[
        "click>=8.1",
        "pydantic>=2.0",
        "rich>=13.0",
        "structlog>=23.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "native-vault=native_vault.cli.entry_points:entrypoint",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
