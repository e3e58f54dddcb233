"""tripmcp: Google sign-in for a booking MCP server via an OAuth proxy."""

__version__ = "0.1.0"

from .app import create_app
from .config import ProxySettings, get_settings

__all__ = ["ProxySettings", "__version__", "create_app", "get_settings"]
