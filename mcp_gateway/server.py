"""
MCP Gateway Server - tool surface for the status aggregator.

Exposes the aggregated assignment, quiz and calendar views as MCP tools so an
assistant can answer "what is due this week?" for a signed-in user. Each tool is
a thin wrapper around a raw ``_function`` taking an ``LMSClient``; the raw
functions carry the behaviour and can be called without an MCP runtime.
"""
from __future__ import annotations

import typing as t
from datetime import date

from fastmcp import FastMCP

from lms_client.client import LMS_API_BASE_URL, STANDARD_TIMEOUT, AuthContext, LMSClient
from orchestrator.calendar_grid import build_month
from orchestrator.executor import (
    MAX_CONCURRENT,
    aggregate_assignments,
    aggregate_events,
    aggregate_quizzes,
    load_courses,
)
from orchestrator.models import DayCell, ResolvedAssignment, ResolvedQuiz, Role
from orchestrator.utils import describe_failures

# Create the MCP server
mcp = FastMCP("LMSStatusGateway")


def _open_client(token: str, role: Role) -> LMSClient:
    return LMSClient(AuthContext(token=token, role=role))


def _check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")


async def _assignment_statuses(client: LMSClient, status: t.Optional[str] = None) -> dict[str, t.Any]:
    """Resolved assignments of every course, optionally filtered by status value."""
    aggregation = await aggregate_assignments(client, await load_courses(client))
    items: list[ResolvedAssignment] = aggregation.items
    if status:
        items = [i for i in items if i.status.value == status]
    return {
        "assignments": items,
        "failed_courses": describe_failures(aggregation.failures),
    }


async def _quiz_statuses(client: LMSClient) -> dict[str, t.Any]:
    """Resolved quizzes of every course, seen from the client's role."""
    aggregation = await aggregate_quizzes(client, await load_courses(client), role=client.auth.role)
    items: list[ResolvedQuiz] = aggregation.items
    return {
        "quizzes": items,
        "failed_courses": describe_failures(aggregation.failures),
    }


async def _calendar_month(
    client: LMSClient,
    year: int,
    month: int,
    today: t.Optional[date] = None,
) -> dict[str, t.Any]:
    """Month grid of lessons and quizzes; only days with events are listed."""
    _check_month(month)
    aggregation = await aggregate_events(client, await load_courses(client))
    cells: list[DayCell] = build_month(year, month, aggregation.items, today=today)
    return {
        "year": year,
        "month": month,
        "cells": len(cells),
        "days": [cell for cell in cells if cell.events],
        "failed_courses": describe_failures(aggregation.failures),
    }


def get_service_status() -> dict[str, str]:
    """Configured backend URL and limits, for debugging."""
    return {
        "lms_service": LMS_API_BASE_URL,
        "timeout_seconds": str(STANDARD_TIMEOUT),
        "max_concurrent_requests": str(MAX_CONCURRENT),
        "gateway_status": "running",
    }


@mcp.tool()
async def assignment_statuses(token: str, status: t.Optional[str] = None) -> dict[str, t.Any]:
    """List the student's assignments with status upcoming, submitted, returned or past_due."""
    async with _open_client(token, Role.STUDENT) as client:
        return await _assignment_statuses(client, status)


@mcp.tool()
async def quiz_statuses(token: str, role: str = "student") -> dict[str, t.Any]:
    """List quizzes with status upcoming or returned, as a student or as the teacher."""
    async with _open_client(token, Role(role)) as client:
        return await _quiz_statuses(client)


@mcp.tool()
async def calendar_month(token: str, year: int, month: int, role: str = "student") -> dict[str, t.Any]:
    """Lessons and quizzes bucketed by start day for one month (month is 1-12)."""
    _check_month(month)
    async with _open_client(token, Role(role)) as client:
        return await _calendar_month(client, year, month)


@mcp.tool()
def get_gateway_info() -> dict[str, str]:
    """Get information about the MCP Gateway and the LMS backend it talks to."""
    return get_service_status()


if __name__ == "__main__":
    print("🌟 Starting LMS status MCP Gateway")
    for name, value in get_service_status().items():
        print(f"  • {name}: {value}")
    mcp.run()
