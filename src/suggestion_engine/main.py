"""Entrypoint: run the Fleet Suggestion Engine server."""

import uvicorn

from suggestion_engine.api.app import create_app
from suggestion_engine.config.settings import Settings


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
