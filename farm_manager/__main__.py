"""Run the farm-manager server with uvicorn: ``python -m farm_manager``."""

from __future__ import annotations

import uvicorn

from farm_manager.services.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "farm_manager.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        proxy_headers=settings.rate_limit_trust_proxy,
    )


if __name__ == "__main__":
    main()
