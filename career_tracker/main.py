"""
Career Tracker API - development server entry point.

    python -m career_tracker.main
"""

from __future__ import annotations

import uvicorn

from career_tracker.config import get_settings


def main():
    """Main entry point."""
    settings = get_settings()
    uvicorn.run(
        "career_tracker.api.app:build_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug and not settings.is_production,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
