"""
Name: ASGI Entrypoint (ledger_auth.main)

Responsibilities:
  - Re-export the FastAPI app for ASGI servers (uvicorn ledger_auth.main:app)
  - Keep this module free of configuration and IO

Collaborators:
  - ledger_auth.api.main: builds and exposes the FastAPI app
"""

from ledger_auth.api.main import app

__all__ = ["app"]
