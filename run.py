"""
Run FastAPI server with auto-reload.
"""

import uvicorn

from server.core.config import settings


def main():
    """Main entry point."""
    print("🚀 Starting Development Server...")
    print(f"🔗 Provider sidecar: {settings.PROVIDER_BASE_URL}")
    print(f"📨 Webhook URL: {settings.PUBLIC_BASE_URL}/webhooks/provider")

    print("\n🚀 Starting Uvicorn with Auto-Reload...\n")

    # reload=True restarts the server on code changes
    try:
        uvicorn.run(
            "server.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.ENV == "development",
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\n\n🛑 Shutting down...")


if __name__ == "__main__":
    main()
