"""`python -m fieldops` runs the API under uvicorn."""

import uvicorn

from fieldops.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "fieldops.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    main()
