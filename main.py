"""
Main entry point for running the RAG retrieval server.
"""

import uvicorn
from config import settings


def main():
    """Start the API server. Cache maintenance runs inside the app lifespan."""
    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
