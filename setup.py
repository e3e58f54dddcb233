"""setup.py for tripmcp."""

import pathlib
import re

from setuptools import find_packages, setup

HERE = pathlib.Path(__file__).parent


def read_version() -> str:
    """Read __version__ from the package without importing it."""
    init = (HERE / "src" / "tripmcp" / "__init__.py").read_text(encoding="utf-8")
    match = re.search(r'^__version__ = "([^"]+)"', init, re.MULTILINE)
    if not match:
        raise SystemExit("Could not find __version__ in src/tripmcp/__init__.py")
    return match.group(1)


setup(
    name="tripmcp",
    version=read_version(),
    description="Booking MCP server with a Google OAuth proxy for MCP clients",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "fastmcp>=2.11.0",
        "mcp>=1.12.0",
        "starlette>=0.40.0",
        "httpx>=0.27.0",
        "pydantic>=2.7.0",
        "python-multipart>=0.0.9",
        "redis>=5.0.1",
        "sqlalchemy>=2.0.0",
        "python-dotenv>=1.0.0",
        "uvicorn>=0.30.0",
        "opentelemetry-api>=1.25.0",
        "opentelemetry-sdk>=1.25.0",
        "opentelemetry-exporter-otlp-proto-http>=1.25.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tripmcp=tripmcp.__main__:main",
        ],
    },
)
