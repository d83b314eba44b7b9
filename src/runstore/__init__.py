"""
runstore - Local persistence for coding-agent runs and their streamed logs.

runstore is the embedded data layer behind a desktop front-end for an
external coding agent. It provides:
- A single-file SQLite store for runs and run logs
- Versioned, additive, resumable schema migrations
- Lock-guarded access safe to share between worker threads
- Filesystem change notifications for the GUI layer

Example usage:
    $ runstore list-runs
    $ runstore show-run <run_id>
    $ runstore migrate --status
"""

__version__ = "0.1.0"
__author__ = "runstore Contributors"

__all__ = [
    "__version__",
    "__author__",
]
