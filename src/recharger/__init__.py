# ABOUTME: Recharger package for Recharge Storefront MCP integration
# ABOUTME: Exports create_server, RechargeClient, and version info

from recharger.client import RechargeClient
from recharger.server import create_server

__version__ = "0.1.0"
__all__ = ["RechargeClient", "create_server", "__version__"]
