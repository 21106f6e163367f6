# src/reclaimer/core/__init__.py
"""Core infrastructure: catalog, classifier, selector, backends, retention."""
