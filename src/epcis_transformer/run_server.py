"""Executable entry point for launching the EPCIS Transformer FastAPI application.

Process managers can import the stable ``app`` object from
``epcis_transformer.app``, or run ``python -m epcis_transformer.run_server``
directly for local development.

Environment Variables:
    PORT (int): Override listening port (default 8000).

Example:
    $ python -m epcis_transformer.run_server
    $ PORT=9000 python -m epcis_transformer.run_server

Production Recommendation:
    Prefer invoking uvicorn directly for tuned concurrency:
        uvicorn epcis_transformer.app:app --host 0.0.0.0 --port 8000 --workers 4
"""

from __future__ import annotations

import os

import uvicorn

from .app import app


def main() -> None:
    """Launch the ASGI server with development-friendly defaults."""
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
