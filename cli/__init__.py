"""Command-line client for the network quality consensus service."""
