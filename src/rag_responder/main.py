"""Entrypoint: run the RAG Responder server."""

import uvicorn

from rag_responder.api.app import create_app
from rag_responder.config.settings import Settings


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
