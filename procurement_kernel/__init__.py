"""
Procurement Kernel

The shared core of the materials procurement lifecycle:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Entity store contract with in-memory and SQLAlchemy adapters
- Workflow value objects, clock, identity
- Best-effort notification fan-out
"""

__version__ = "0.1.0"
