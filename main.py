#!/usr/bin/env python3
"""
CodeGate -- account sessions, email verification and password recovery API.

Usage:
  python main.py
  python main.py --host 0.0.0.0 --port 4000
  python main.py --reload

Environment variables (or .env):
  TOKEN_SECRET     Signs session tokens. Required, at least 32 characters.
  CODE_SECRET      Keys one-time code fingerprints. Required, at least 32 characters.
  ENVIRONMENT      "production" hardens the session cookie (Secure, SameSite=None).
  DATABASE_URL     SQLAlchemy URL (default: sqlite:///codegate.db).
  RESEND_API_KEY   Resend API key used to mail verification and recovery codes.
  MAIL_FROM        Sender address for those emails.
"""

import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="codegate",
        description="Run the CodeGate API server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --port 8080
  ENVIRONMENT=production python main.py --host 0.0.0.0
        """,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=4000, help="Port to listen on (default: 4000)")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args()

    # Import string rather than the app object so --reload works.
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
