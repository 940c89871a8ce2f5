"""Collaborator interfaces and their HTTP and JSON-file implementations."""
