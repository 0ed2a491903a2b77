"""
infogeo/modules/ - Table ingestion and result tables

Usage:
    from infogeo.modules.counts import count_field_from_tables
    from infogeo.modules.tables import tensor_table, cluster_table
"""

from infogeo.modules.counts import count_field_from_tables, read_table
from infogeo.modules.tensor_scalars import tensor_scalars

__all__ = [
    "count_field_from_tables",
    "read_table",
    "tensor_scalars",
]
