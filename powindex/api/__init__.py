# powindex/api/__init__.py
"""
FastAPI Proof-of-Work Profile API.
"""

__version__ = "0.1.0"
__description__ = "API for generating and reading developer Proof-of-Work profiles"
