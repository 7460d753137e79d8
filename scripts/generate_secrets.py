#!/usr/bin/env python3
"""
Generate secrets for a personal-cloud deployment.

Prints values to stdout; do NOT commit the output.
"""

from __future__ import annotations

import secrets


def token(nbytes: int = 48) -> str:
    return secrets.token_urlsafe(nbytes)


def main() -> None:
    print("# Paste these into your secret manager / deployment env vars")
    print(f"JWT_SECRET_KEY={token(64)}")
    print(f"METRICS_TOKEN={token(32)}")


if __name__ == "__main__":
    main()
