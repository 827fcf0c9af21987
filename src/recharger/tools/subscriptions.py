# ABOUTME: Subscription, charge, and order tools for Recharge
# ABOUTME: List, skip, cancel, and reschedule subscriptions for a customer

import re
from datetime import date as date_type
from typing import TYPE_CHECKING, Any

from recharger.client import with_tool_errors
from recharger.exceptions import ValidationError
from recharger.types import IdentityDescriptor, OperationSpec

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from recharger.client import RechargeClient

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SUBSCRIPTION_STATUSES = ("active", "cancelled", "expired")


def validate_date(value: str, field: str = "date") -> str:
    """Check a YYYY-MM-DD date string and return it trimmed."""
    value = value.strip() if isinstance(value, str) else ""
    if not DATE_PATTERN.match(value):
        raise ValidationError(f"Invalid date format for {field}. Expected YYYY-MM-DD")
    try:
        date_type.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date value for {field}: {value}") from None
    return value


def validate_id(value: str | int, field: str) -> str:
    """Check a resource ID is a positive integer or non-empty string."""
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} cannot be empty")
    if text.lstrip("-").isdigit() and int(text) < 1:
        raise ValidationError(f"{field} must be 1 or greater, got: {value}")
    return text


def _paging(limit: int | None, page: int | None) -> dict[str, Any]:
    query: dict[str, Any] = {}
    if limit is not None:
        if not 1 <= limit <= 250:
            raise ValidationError(f"Limit must be between 1 and 250, got: {limit}")
        query["limit"] = limit
    if page is not None:
        if page < 1:
            raise ValidationError(f"Page must be 1 or greater, got: {page}")
        query["page"] = page
    return query


def register_subscription_tools(mcp: "FastMCP", get_client: "Callable") -> None:
    """Register subscription, charge, and order tools with the MCP server."""

    async def run(operation: OperationSpec, customer_id, customer_email, session_token) -> dict:
        client: RechargeClient = await get_client()
        return await client.resolve_and_execute(
            operation,
            IdentityDescriptor(
                explicit_token=session_token,
                customer_id=customer_id,
                customer_email=customer_email,
            ),
        )

    @mcp.tool
    @with_tool_errors
    async def get_subscriptions(
        status: str | None = None,
        limit: int | None = None,
        page: int | None = None,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """
        List the customer's subscriptions.

        Args:
            status: Filter by status (active, cancelled, expired)
            limit: Page size, 1-250
            page: Page number, starting at 1
            customer_id: Recharge customer ID
            customer_email: Customer email
            session_token: Existing customer session token
        """
        query = _paging(limit, page)
        if status is not None:
            if status not in SUBSCRIPTION_STATUSES:
                raise ValidationError(f"Invalid status: {status}")
            query["status"] = status
        return await run(
            OperationSpec(method="GET", path="/subscriptions", query=query or None),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def get_subscription(
        subscription_id: str,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """Get one subscription by ID."""
        subscription_id = validate_id(subscription_id, "subscription_id")
        return await run(
            OperationSpec(method="GET", path=f"/subscriptions/{subscription_id}"),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def skip_subscription(
        subscription_id: str,
        date: str,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """
        Skip a subscription delivery on a given date.

        Args:
            subscription_id: Subscription to skip
            date: Charge date to skip (YYYY-MM-DD)
        """
        subscription_id = validate_id(subscription_id, "subscription_id")
        return await run(
            OperationSpec(
                method="POST",
                path=f"/subscriptions/{subscription_id}/skip",
                body={"date": validate_date(date)},
            ),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def unskip_subscription(
        subscription_id: str,
        date: str,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """Restore a previously skipped delivery (date in YYYY-MM-DD)."""
        subscription_id = validate_id(subscription_id, "subscription_id")
        return await run(
            OperationSpec(
                method="POST",
                path=f"/subscriptions/{subscription_id}/unskip",
                body={"date": validate_date(date)},
            ),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def cancel_subscription(
        subscription_id: str,
        cancellation_reason: str | None = None,
        cancellation_reason_comments: str | None = None,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """
        Cancel a subscription.

        Args:
            subscription_id: Subscription to cancel
            cancellation_reason: Short reason shown to the merchant
            cancellation_reason_comments: Free-text comments
        """
        subscription_id = validate_id(subscription_id, "subscription_id")
        body = {
            key: value
            for key, value in {
                "cancellation_reason": cancellation_reason,
                "cancellation_reason_comments": cancellation_reason_comments,
            }.items()
            if value is not None
        }
        return await run(
            OperationSpec(
                method="POST", path=f"/subscriptions/{subscription_id}/cancel", body=body or None
            ),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def activate_subscription(
        subscription_id: str,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """Reactivate a cancelled subscription."""
        subscription_id = validate_id(subscription_id, "subscription_id")
        return await run(
            OperationSpec(method="POST", path=f"/subscriptions/{subscription_id}/activate"),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def set_next_charge_date(
        subscription_id: str,
        date: str,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """Move the next charge of a subscription to a new date (YYYY-MM-DD)."""
        subscription_id = validate_id(subscription_id, "subscription_id")
        return await run(
            OperationSpec(
                method="POST",
                path=f"/subscriptions/{subscription_id}/set_next_charge_date",
                body={"date": validate_date(date)},
            ),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def get_charges(
        limit: int | None = None,
        page: int | None = None,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """List upcoming and past charges for the customer."""
        return await run(
            OperationSpec(method="GET", path="/charges", query=_paging(limit, page) or None),
            customer_id,
            customer_email,
            session_token,
        )

    @mcp.tool
    @with_tool_errors
    async def get_orders(
        limit: int | None = None,
        page: int | None = None,
        customer_id: str | None = None,
        customer_email: str | None = None,
        session_token: str | None = None,
    ) -> dict:
        """List the customer's orders."""
        return await run(
            OperationSpec(method="GET", path="/orders", query=_paging(limit, page) or None),
            customer_id,
            customer_email,
            session_token,
        )
