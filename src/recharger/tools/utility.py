# ABOUTME: Session cache maintenance tools for Recharger
# ABOUTME: Purge cached customer sessions and report cache statistics

from typing import TYPE_CHECKING, Annotated

from pydantic import Field

from recharger.client import with_tool_errors
from recharger.types import CacheStats, PurgeResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from recharger.client import RechargeClient


def register_utility_tools(mcp: "FastMCP", get_client: "Callable") -> None:
    """Register session cache tools with the MCP server."""

    @mcp.tool
    @with_tool_errors
    async def purge_session_cache(
        all: bool = True,
        older_than_minutes: Annotated[int | None, Field(ge=1, le=1440)] = None,
        reason: str = "manual purge",
    ) -> PurgeResult:
        """
        Clear cached customer session tokens.

        Useful when switching between dev/test/production stores or when
        authentication keeps failing. New sessions are created automatically
        on the next customer call.

        Args:
            all: Clear every cached session (ignored when older_than_minutes is set)
            older_than_minutes: Only clear sessions older than this (1-1440)
            reason: Why the cache is being purged, for the logs
        """
        client: RechargeClient = await get_client()
        return client.purge_credentials(
            all=all, older_than_minutes=older_than_minutes, reason=reason
        )

    @mcp.tool
    @with_tool_errors
    async def get_session_cache_stats() -> CacheStats:
        """
        Get statistics about cached customer session tokens.

        Returns the number of cached sessions, email mappings, and the age in
        seconds of the oldest and newest session.
        """
        client: RechargeClient = await get_client()
        return client.credential_stats()
