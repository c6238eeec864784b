"""Serve the gateway: python -m scout.gateway"""

from __future__ import annotations

import uvicorn

from scout.config.settings import GatewaySettings


def main() -> None:
    settings = GatewaySettings()
    uvicorn.run("scout.gateway.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
