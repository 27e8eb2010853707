"""
Test suite for the Anywhere explorer.

Covers geometry, the tool registry and navigation executor, the live
session over an in-memory transport, the websocket transport against a
local server, and the explorer orchestrator.

Run tests with:
    pytest tests/ -v
"""
