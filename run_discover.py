#!/usr/bin/env python3
"""
CLI script to discover documents.

Two modes:
  Offline: parse saved document server pages (no network, no session)
  Online:  list portal folders by id through the authenticated transport

Online mode reads PORTAL_DOCS_* settings and the session cookie header from
PORTAL_DOCS_COOKIE (a .env file in the working directory is loaded first).

Usage:
    python run_discover.py saved_folder.html
    python run_discover.py --folder 150953 --folder 150954
    python run_discover.py --folder 150953 --force-refresh -o files.json
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

from portal_docs.config import EngineConfig
from portal_docs.logger import setup_logger
from portal_docs.main import DocumentEngine
from portal_docs.parser import DocumentParser
from portal_docs.preprocessor import Preprocessor
from portal_docs.transport import HttpxTransport


def parse_files(paths: list[str], config: EngineConfig) -> list[dict]:
    parser = DocumentParser(config)
    results = []

    for filepath in paths:
        path = Path(filepath)
        print(f"Parsing: {path.name}", file=sys.stderr)

        try:
            # Decode with the page's declared charset, like a browser would
            raw_bytes = path.read_bytes()
            html = raw_bytes.decode(Preprocessor.detect_charset_from_bytes(raw_bytes), errors='replace')
        except OSError as e:
            results.append({"source": path.name, "status": "error", "error": str(e)})
            print(f"  ✗ Error: {e}", file=sys.stderr)
            continue

        result = parser.parse(html)
        results.append({"source": path.name, "status": "success", **result.model_dump(mode="json")})
        print(f"  ✓ {len(result.entries)} entries ({result.outcome.value})", file=sys.stderr)

    return results


async def list_folders(folder_ids: list[str], config: EngineConfig, force_refresh: bool) -> list[dict]:
    cookie_header = os.getenv("PORTAL_DOCS_COOKIE", "")
    if not cookie_header:
        print("Warning: PORTAL_DOCS_COOKIE is not set, requests are anonymous", file=sys.stderr)
    transport = HttpxTransport.from_cookie_header(
        cookie_header, timeout=config.request_timeout, cookie_domain=config.allowed_host
    )

    results = []
    async with DocumentEngine(transport, config) as engine:
        for folder_id in folder_ids:
            print(f"Listing folder: {folder_id}", file=sys.stderr)
            entries = await engine.list_folder(folder_id, force_refresh=force_refresh)
            results.append({
                "source": engine.folder_url(folder_id),
                "status": "success" if entries else "empty",
                "entries": [e.model_dump(mode="json") for e in entries],
            })
            print(f"  ✓ {len(entries)} entries", file=sys.stderr)
    return results


def main():
    parser = argparse.ArgumentParser(description="Discover documents on the portal document server")
    parser.add_argument("files", nargs="*", help="Saved HTML pages to parse offline")
    parser.add_argument("--folder", action="append", default=[], help="Folder id to list online (repeatable)")
    parser.add_argument("--force-refresh", "-f", action="store_true", help="Ignore cached listings")
    parser.add_argument("--output", "-o", help="Output JSON file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    if not args.files and not args.folder:
        parser.error("give HTML files and/or --folder ids")

    setup_logger(level=logging.DEBUG if args.verbose else None)
    config = EngineConfig.from_env()

    results = parse_files(args.files, config)
    if args.folder:
        results.extend(asyncio.run(list_folders(args.folder, config, args.force_refresh)))

    # ensure_ascii=False keeps Czech names readable
    output = json.dumps(results, indent=2, ensure_ascii=False)

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"\nSaved to: {args.output}", file=sys.stderr)
    else:
        print(output)


if __name__ == "__main__":
    main()
