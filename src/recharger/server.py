# ABOUTME: MCP server entry point for Recharger
# ABOUTME: Configures FastMCP and registers Recharge storefront tools

import logging

from fastmcp import FastMCP

from recharger.client import ClientProvider
from recharger.config import Settings, load_settings
from recharger.tools.customers import register_customer_tools
from recharger.tools.subscriptions import register_subscription_tools
from recharger.tools.utility import register_utility_tools

logger = logging.getLogger(__name__)


def create_server(settings: Settings | None = None, provider: ClientProvider | None = None) -> FastMCP:
    """
    Create and configure the Recharger MCP server.

    Args:
        settings: Configuration (default: loaded from the environment)
        provider: Client provider (default: one built from settings)

    Returns:
        Configured FastMCP server instance
    """
    settings = settings or load_settings()
    provider = provider or ClientProvider(settings)

    mcp = FastMCP(
        name=settings.server_name,
        instructions="""
Recharger provides access to the Recharge Storefront API for subscription
management on behalf of individual customers. You can:

- Read and update the customer record
- List subscriptions, charges, and orders
- Skip, unskip, cancel, reactivate, and reschedule subscriptions
- Inspect and purge the cached customer session tokens

Every customer tool accepts customer_id, customer_email, or session_token.
Pass customer_id when you know it; customer_email is looked up once and then
cached. Session tokens are created and renewed automatically with the admin
token, so session_token is only needed for an existing customer session.

Once any customer session has been cached, calls without a customer
identity are refused to avoid mixing up customer data.

Use purge_session_cache after switching stores or environments.
""",
    )

    register_customer_tools(mcp, provider.get_client)
    register_subscription_tools(mcp, provider.get_client)
    register_utility_tools(mcp, provider.get_client)

    return mcp


def main() -> None:
    """Run the MCP server."""
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    server = create_server(settings)
    server.run()


if __name__ == "__main__":
    main()
