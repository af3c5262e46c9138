"""Run the GenieLearn backend with uvicorn: ``python -m genielearn``."""
import uvicorn

from genielearn.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "genielearn.main:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
