# powindex/__init__.py
"""
Proof-of-Work developer profiles from verifiable GitHub activity.
"""

__version__ = "0.1.0"
