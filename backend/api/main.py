"""Guild queue API entry point"""

import uvicorn

from api.app import create_app
from api.core.config import get_settings

app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    run()
