"""HTTP console for the PyFS server.

This package provides a Flask application that exposes the same
command protocol as the TCP server, for poking at a running file
system from a browser or ``curl``.  It is an **optional** extra —
install with::

    pip install py-fs[web]

The ``create_app`` factory in ``app.py`` wraps an existing engine and
serves two endpoints:

- ``POST /api/execute`` — run one protocol command and return JSON.
- ``GET /api/status`` — file list and free-space summary.
"""
