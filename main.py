"""
AutoHaul Marketplace Backend
============================
Entry point. Run with: uvicorn main:app --reload

Serves the booking wizard, the driver job board and the admin assignment
API on one process; the expiry worker starts with the app.
"""

import uvicorn

from autohaul.api.app import create_app
from autohaul.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=True,
    )
