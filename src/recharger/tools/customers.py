# ABOUTME: Customer tools for Recharge
# ABOUTME: Read and update the customer record and look customers up by email

from typing import TYPE_CHECKING, Any

from recharger.client import with_tool_errors
from recharger.types import IdentityDescriptor, OperationSpec

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from recharger.client import RechargeClient


def register_customer_tools(mcp: "FastMCP", get_client: "Callable") -> None:
    """Register customer tools with the MCP server."""

    @mcp.tool
    @with_tool_errors
    async def get_customer(
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """
        Get the customer record for the authenticated customer.

        Args:
            customer_id: Recharge customer ID
            customer_email: Customer email (looked up if customer_id is not given)
            session_token: Existing customer session token to use as-is
        """
        client: RechargeClient = await get_client()
        return await client.resolve_and_execute(
            OperationSpec(method="GET", path="/customer"),
            IdentityDescriptor(
                explicit_token=session_token,
                customer_id=customer_id,
                customer_email=customer_email,
            ),
        )

    @mcp.tool
    @with_tool_errors
    async def update_customer(
        updates: dict[str, Any],
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """
        Update fields on the customer record (e.g. first_name, last_name, phone).

        Args:
            updates: Fields to change
            customer_id: Recharge customer ID
            customer_email: Customer email
            session_token: Existing customer session token
        """
        client: RechargeClient = await get_client()
        return await client.resolve_and_execute(
            OperationSpec(method="PUT", path="/customer", body=updates),
            IdentityDescriptor(
                explicit_token=session_token,
                customer_id=customer_id,
                customer_email=customer_email,
            ),
        )

    @mcp.tool
    @with_tool_errors
    async def get_customer_by_email(email: str) -> dict:
        """
        Find a customer's Recharge ID by email. Uses the admin token.

        Args:
            email: Customer email address

        Returns:
            The customer ID and the email it was resolved from
        """
        client: RechargeClient = await get_client()
        resolved = await client.resolver.resolve(IdentityDescriptor(customer_email=email))
        return {"customer_id": resolved.customer_id, "email": resolved.email}
