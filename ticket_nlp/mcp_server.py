#!/usr/bin/env python3
"""
Ticket query MCP server.

Exposes the ticket query pipeline as MCP tools:
    tickets(query, user_id)            - answer a free-text ticket question
    admin_tickets(query, user_id)      - same, admin callers only
    ticket_capabilities(user_id)       - what the caller may ask
    ticket_suggestions(user_id)        - example queries for the caller

Port: 8891 (configurable via TICKET_NLP_MCP_PORT)
Transport: SSE
Ticket service: TICKET_API_URL
"""

import logging
import os
import sys
from typing import Any, Dict

from fastmcp import FastMCP

from ticket_nlp.config import NLPConfig, configure_logging
from ticket_nlp.http_store import HttpIdentityStore, HttpTicketStore
from ticket_nlp.orchestrator import build_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("ticket-nlp.mcp")

# Configuration
MCP_ENABLED = os.getenv("TICKET_NLP_MCP_ENABLED", "false").lower() == "true"
MCP_PORT = int(os.getenv("TICKET_NLP_MCP_PORT", "8891"))
MCP_HOST = os.getenv("TICKET_NLP_MCP_HOST", "0.0.0.0")

config = NLPConfig.from_env()
configure_logging(config)

mcp = FastMCP(name="ticket-nlp")

orchestrator = build_orchestrator(HttpTicketStore(), HttpIdentityStore(), config)


def tickets(query: str, user_id: str) -> str:
    """
    Ask a question about emergency-access tickets in plain English.

    Args:
        query: What you want, e.g. "show active tickets" or "close ticket #12".
        user_id: ID of the user asking. Determines which tickets are visible.

    Returns:
        The answer, or the reason the request could not be served.
    """
    logger.info(f"Tool called: tickets(user_id='{user_id}', query='{query[:80]}')")
    return orchestrator.process_query(query, user_id).message


def admin_tickets(query: str, user_id: str) -> str:
    """
    Run an administrative ticket query such as "show all tickets" or "system statistics".

    The caller must hold the ADMIN role; everyone else is refused before
    any ticket data is read.
    """
    logger.info(f"Tool called: admin_tickets(user_id='{user_id}', query='{query[:80]}')")
    return orchestrator.process_admin_query(query, user_id).message


def ticket_capabilities(user_id: str) -> Dict[str, Any]:
    """List the intents and entity types available to a user."""
    return orchestrator.get_capabilities(user_id).model_dump()


def ticket_suggestions(user_id: str) -> Dict[str, Any]:
    """Suggested queries and quick actions for a user."""
    return orchestrator.get_suggestions(user_id).model_dump()


for _tool in (tickets, admin_tickets, ticket_capabilities, ticket_suggestions):
    mcp.tool()(_tool)


def main():
    """Main entry point."""
    if not MCP_ENABLED:
        logger.warning("Ticket NLP MCP Server is DISABLED")
        logger.warning("To enable: export TICKET_NLP_MCP_ENABLED=true")
        sys.exit(0)

    if not orchestrator.is_service_healthy():
        logger.error("Pipeline health check failed, refusing to start")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Starting Ticket NLP MCP Server")
    logger.info(f"Host: {MCP_HOST}")
    logger.info(f"Port: {MCP_PORT}")
    logger.info(f"Ticket service: {os.getenv('TICKET_API_URL', 'http://localhost:8080')}")
    logger.info("=" * 60)

    mcp.run(transport="sse", host=MCP_HOST, port=MCP_PORT)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
