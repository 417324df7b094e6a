"""
extkit - build, catalog and conformance-test extension packages.

Extensions are independently authored packages implementing the source
contract in :mod:`extkit.extension`. The pipeline in :mod:`extkit.build`
bundles them into standalone archives and publishes a sorted catalog.
"""

from extkit.extension import Extension, MetadataSource
from extkit.models.source import ExtensionMetadata

__version__ = "0.3.0"

__all__ = [
    "Extension",
    "ExtensionMetadata",
    "MetadataSource",
    "__version__",
]
