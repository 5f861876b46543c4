"""
Service layer for artifact acquisition.

This module contains the acquisition core (process runner, artifact store,
registry, pipeline and reclaimer), independent of the web layer. It is used by:
- The web API (artifacts/views.py) through the runtime built in artifacts/runtime.py
- The CLI management commands (management/commands/acquire.py, reclaim.py)
"""
