"""
Client-side mirror of a remote analyzer's test hierarchy.

Keeps a local tree of crates, modules and test functions synchronized with
the analyzer through incremental DeltaUpdate notifications, projects that tree
onto a host-owned tree view, and drives test runs.
"""

APP_NAME = 'Runnables'
__version__ = '1.0.0'
