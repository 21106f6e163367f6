# tests/property/__init__.py
"""Property-based tests for Reclaimer.

Property-based testing validates invariants that must hold for ALL inputs,
not just the specific examples we think of. A purge engine deletes data,
so idempotence, dedup and accounting are non-negotiable.

Test modules:
- test_classifier_properties: closure and determinism of classification
- test_retention_properties: run-level invariants over generated catalogs
"""
