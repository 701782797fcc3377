"""
Storefront API: local entry point.

Serves the FastAPI app together with the Socket.IO endpoint on one port.
"""
import os

import uvicorn

from app.utils.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "app.main:asgi_app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "4000")),
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
