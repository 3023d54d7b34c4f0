"""
Taipei Rental Hub

Aggregates rental listings from Taipei listing sites into one
de-duplicated store with price history, and lets users search it either
with structured filters or in natural language.
"""

__version__ = "0.1.0"
__author__ = "Taipei Rental Hub Team"
