#!/usr/bin/env python3
"""
CLI script to resolve attachment references into direct download locations.

Reads PORTAL_DOCS_* settings and the session cookie header from
PORTAL_DOCS_COOKIE (a .env file in the working directory is loaded first).

Usage:
    python run_resolve.py "/auth/dok_server/slozka.pl?download=350247;id=150953;z=1"
    python run_resolve.py "dokumenty_cteni.pl?id=150953;dok=350247" -v
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv
load_dotenv()

from portal_docs.config import EngineConfig
from portal_docs.logger import setup_logger
from portal_docs.main import DocumentEngine
from portal_docs.transport import HttpxTransport


async def resolve_all(references: list[str], config: EngineConfig) -> list[dict]:
    transport = HttpxTransport.from_cookie_header(
        os.getenv("PORTAL_DOCS_COOKIE", ""),
        timeout=config.request_timeout,
        cookie_domain=config.allowed_host,
    )
    results = []
    async with DocumentEngine(transport, config) as engine:
        # Output order matches the arguments
        for reference in references:
            location = await engine.resolve(reference)
            results.append({"reference": reference, **location.model_dump(mode="json")})
            mark = "✓" if location.ok else "✗"
            print(f"  {mark} {location.kind.value}: {location.uri}", file=sys.stderr)
    return results


def main():
    parser = argparse.ArgumentParser(description="Resolve portal document references")
    parser.add_argument("references", nargs="+", help="Attachment references to resolve")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    setup_logger(level=logging.DEBUG if args.verbose else None)

    results = asyncio.run(resolve_all(args.references, EngineConfig.from_env()))
    print(json.dumps(results, indent=2, ensure_ascii=False))

    # Non-zero exit when any reference could only be returned unresolved
    if any(r["kind"] == "failed" for r in results):
        sys.exit(1)


if __name__ == "__main__":
    main()
