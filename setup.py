#!/usr/bin/env python3
"""
Setup script for White Ninja AI

Install with:
    pip install -e .

Or with the test tooling:
    pip install -e ".[dev]"
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = ""
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")

# Server dependencies
server_requirements = [
    "fastapi>=0.109.0",
    "uvicorn[standard]>=0.27.0",
    "pydantic>=2.5.0",
    "pydantic-settings>=2.1.0",
    "anthropic>=0.18.0,<1.0",
    "httpx>=0.26.0",
    "psutil>=5.9.0",
    "python-dotenv>=1.0.0",
]

# CLI dependencies
cli_requirements = [
    "httpx>=0.26.0",
    "rich>=13.7.0",
    "websockets>=12.0",
]

setup(
    name="whiteninja",
    version="0.2.0",
    description="White Ninja AI - a five-agent team that builds websites live over WebSocket",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="White Ninja AI Team",
    license="MIT",
    packages=find_packages(include=["whiteninja", "whiteninja.*", "cli"]),
    python_requires=">=3.9",
    install_requires=server_requirements + [r for r in cli_requirements if r not in server_requirements],
    extras_require={
        "cli": cli_requirements,
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "faker>=22.0.0",
            "black>=24.1.0",
            "isort>=5.13.0",
            "mypy>=1.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "whiteninja=cli.main:main",
            "whiteninja-server=whiteninja.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Code Generators",
    ],
    keywords="ai multi-agent website-builder claude anthropic websocket",
)
