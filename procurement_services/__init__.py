"""
procurement_services -- Package init and public API.

Responsibility:
    Composition of the module services around shared infrastructure.

Architecture position:
    Services.  Dependency direction:
        procurement_services/ -> procurement_modules/, procurement_config/ (allowed)
        procurement_kernel/   -> procurement_services/ (FORBIDDEN)
        procurement_engines/  -> procurement_services/ (FORBIDDEN)
"""

from procurement_services.suite import ProcurementSuite

__all__ = ["ProcurementSuite"]
