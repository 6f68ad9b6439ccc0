"""Command line interface for relaydesk."""
