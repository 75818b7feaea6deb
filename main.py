"""
Review Collector - Web Server Entry Point
=========================================

Run this to start the collection API:
    python main.py

Then open http://127.0.0.1:8000/docs in your browser.

To run a single collection from the command line:
    python run_collection.py "https://www.google.com/maps/place/..."
"""

import uvicorn

from src.infrastructure.config import get_settings


def main():
    """Start the web server."""
    settings = get_settings()

    print("\n" + "=" * 50)
    print("   Review Collector - API")
    print("=" * 50)
    print(f"\n   Starting server at http://{settings.web.host}:{settings.web.port}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "src.web.app:app",
        host=settings.web.host,
        port=settings.web.port,
        reload=False,
        log_level=settings.web.log_level.lower()
    )


if __name__ == "__main__":
    main()
