"""
Entry point for the profanity-checker service.

Run this file directly to start the FastAPI server:
    python main.py
    python -m main

Or use uvicorn directly:
    uvicorn profanity_checker.main:app --reload --host 0.0.0.0 --port 8000
"""

import uvicorn

from profanity_checker.config import settings


def main() -> None:
    """
    Start the uvicorn server.

    Server configuration can be overridden via environment variables:
    - HOST: Server host (default: 0.0.0.0)
    - PORT: Server port (default: 8000)
    - OPENSUBTITLES_API_KEY / SUBDL_API_KEY: Subtitle provider credentials
    - GEMINI_API_KEY: Classification service key
    """
    print("=" * 60)
    print("Profanity Checker")
    print("=" * 60)
    print(f"Starting server on http://{settings.host}:{settings.port}")
    print("Providers configured:")
    print(f"  - OpenSubtitles: {'yes' if settings.opensubtitles_api_key else 'no'}")
    print(f"  - SubDL: {'yes' if settings.subdl_api_key else 'no'}")
    print("  - Gestdown: yes (no key required)")
    print(f"Classifier: {settings.gemini_model} ({'configured' if settings.gemini_api_key else 'missing key'})")
    print("=" * 60)

    uvicorn.run(
        "profanity_checker.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
