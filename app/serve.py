import argparse

import uvicorn

from app.config import get_settings


def main():
    parser = argparse.ArgumentParser(description="Run the civic roster API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")  # noqa: S104
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    args = parser.parse_args()

    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=get_settings().log_level.lower(),
    )


if __name__ == "__main__":
    main()
