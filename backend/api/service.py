"""
API service entrypoint: serves api.app:app with uvicorn.

The live stream holds connections open for as long as clients watch, so the
keep-alive and concurrency limits are sized for long-lived SSE responses.
"""
from __future__ import annotations

import os

import uvicorn

from shared.config import get_settings


def main() -> None:
    settings = get_settings()
    # Hosting platforms assign the port through PORT
    port = int(os.environ.get("PORT", settings.api_port))

    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=port,
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
        access_log=False,
        timeout_keep_alive=int(settings.stream_live_interval_s * 4),
        limit_concurrency=2000,
    )


if __name__ == "__main__":
    main()
