"""Collection access for docshape.

Repository validates every write against its schema; the index helpers wrap
the driver's index commands.
"""

from docshape.repository.indexes import (
    IndexSpec,
    create_index,
    create_indexes,
    drop_index,
    drop_indexes,
    generate_index_name,
    get_index,
    index_exists,
    list_indexes,
    sync_indexes,
)
from docshape.repository.repository import Repository

__all__ = [
    # Repository
    "Repository",
    # Indexes
    "IndexSpec",
    "create_index",
    "create_indexes",
    "drop_index",
    "drop_indexes",
    "generate_index_name",
    "get_index",
    "index_exists",
    "list_indexes",
    "sync_indexes",
]
