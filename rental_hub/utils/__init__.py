"""
Shared utilities: structured logging, error handling and JSON parsing.
"""
