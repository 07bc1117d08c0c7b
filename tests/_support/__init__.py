"""
Test support utilities for layerstore tests.

Entity types, schemas and DDL shared across test modules, plus a
connection wrapper that records every statement the engine sends.
"""
