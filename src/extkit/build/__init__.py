"""
Extension build pipeline.

Discovery, bundling, introspection, catalog assembly and conformance
testing of extension packages.
"""

from extkit.build.bundler import (
    Artifact,
    BundleFailed,
    BundleOptions,
    Bundler,
    Diagnostic,
    DiskOutput,
    MemoryOutput,
    ZipappBundler,
)
from extkit.build.catalog import assemble_catalog, write_manifest
from extkit.build.compiler import CompileResult, CompilerAdapter, WorkerPool
from extkit.build.discovery import BuildTarget, discover_targets, discover_tests
from extkit.build.introspect import Introspector, SubprocessLoader, ZipImportLoader
from extkit.build.runner import ConformanceRunner, EntryOutcome, EntryState

__all__ = [
    "Artifact",
    "BuildTarget",
    "BundleFailed",
    "BundleOptions",
    "Bundler",
    "CompileResult",
    "CompilerAdapter",
    "ConformanceRunner",
    "Diagnostic",
    "DiskOutput",
    "EntryOutcome",
    "EntryState",
    "Introspector",
    "MemoryOutput",
    "SubprocessLoader",
    "WorkerPool",
    "ZipImportLoader",
    "ZipappBundler",
    "assemble_catalog",
    "discover_targets",
    "discover_tests",
    "write_manifest",
]
