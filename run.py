# run.py
import os

import uvicorn

from fxjournal.config import settings, configure_logging

# ==================== ASCII BANNER ====================
BANNER = r"""
   FX SYNDICATE - Trade Journal

"""

if __name__ == "__main__":
    configure_logging()
    print(BANNER)
    print(f"[🚀] Starting {settings.APP_NAME} v{settings.VERSION}...\n")

    uvicorn.run(
        "fxjournal.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
