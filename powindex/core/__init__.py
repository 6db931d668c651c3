# powindex/core/__init__.py
"""
Domain models, configuration, errors and the pipeline orchestrator.
"""
