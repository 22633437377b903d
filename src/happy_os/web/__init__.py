"""JSON HTTP API for the HappyOS terminal.

This package provides a Flask application that exposes the terminal
service over HTTP, standing in for a chat front end.  It is an
**optional** extra — install with::

    pip install happy-os[web]

The ``create_app`` factory in ``app.py`` serves:

- ``POST /api/execute`` — run a command line for a user.
- ``GET|DELETE /api/history/<user_id>`` — view or clear a user's history.
- ``GET|POST /api/edit/<user_id>`` — stage or save a file edit.
- ``POST /api/downloads/<user_id>/poll`` — tick a user's downloads.
"""
