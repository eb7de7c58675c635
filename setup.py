"""Package setup for teamlock."""

from setuptools import setup, find_packages

setup(
    name="teamlock",
    version="1.0.0",
    description="Team code verification and team-scoped write locks for multi-team games",
    packages=find_packages(include=["teamlock", "teamlock.*"], exclude=["teamlock.tests"]),
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.100.0",
        "starlette>=0.27.0",
        "pydantic>=2.0.0",
        "uvicorn>=0.23.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0", "httpx>=0.24.0"],
    },
    entry_points={
        "console_scripts": [
            "teamlock=teamlock.cli:app",
        ],
    },
)
