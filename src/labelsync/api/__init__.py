"""
HTTP layer for labelsync.

Quick start::

    from labelsync.api import create_app

    app = create_app()  # ready for uvicorn
"""

from labelsync.api.app import create_app

__all__ = ["create_app"]
