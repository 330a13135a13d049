"""
MCP Tools for the Chat Annual Report server.

This package contains the tool implementations exposed by the MCP server.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ToolResponse(BaseModel):
    """Standard response format for all tools."""

    success: bool = Field(default=True, description="Whether the tool executed successfully")
    error: Optional[str] = Field(default=None, description="Error message if any")
    error_type: Optional[str] = Field(default=None, description="Type of error")


class ScopeQuery(BaseModel):
    """Schema for the analysis scope parameter."""

    year: Optional[int] = Field(
        default=None, ge=1970, le=9999, description="Calendar year, or None for all time"
    )


class FirstTimesQuery(BaseModel):
    """Schema for first-occurrence keyword searches."""

    contact_id: str = Field(min_length=1, description="Contact identifier (raw or hashed)")
    keywords: List[str] = Field(min_length=1, max_length=50, description="Keywords to look for")


__all__ = ["ToolResponse", "ScopeQuery", "FirstTimesQuery"]
