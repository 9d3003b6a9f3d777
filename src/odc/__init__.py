"""
odc - OData data-source connector with a sharded cache layer.
"""

__version__ = "0.1.0"
