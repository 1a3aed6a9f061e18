"""Run the API with uvicorn: ``python -m routemate``."""

import uvicorn

from routemate.core import config


def main() -> None:
    settings = config.get_settings()
    uvicorn.run(
        "routemate.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
