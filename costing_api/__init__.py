"""
Formulation costing REST API.

Tracks raw materials, vendors and formulations per tenant, keeps derived
costs consistent when material prices change, and guards formulation
deletion behind an archive-first lifecycle.
"""

__version__ = "1.0.0"
