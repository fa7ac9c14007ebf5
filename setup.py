"""
Setup script for examhall-engine.

Examhall is the timed assessment delivery engine for the learner apps.
It runs one timed session at a time and serves three roles:

1. Session Runner - Daily, preview, proctored and practice sessions
2. Deadline Keeper - One authoritative deadline that survives restarts
3. Offline Fallback - Queued answers and submissions replayed on reconnect

The 'examhall' command is the terminal entry point.
"""

from setuptools import find_packages, setup

setup(
    name="examhall-engine",
    version="1.0.0",
    description="Timed assessment delivery engine with offline-first sync",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Academic Nightingale",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "examhall=examhall.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Testing",
    ],
    keywords="assessment quiz exam timer offline education",
)
