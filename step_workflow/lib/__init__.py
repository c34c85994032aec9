"""Shared utilities: error handling and the step audit trail."""
