#!/usr/bin/env python3
"""
Backend startup wrapper.

Usage:
    python -m sentient.start_backend --port 8000
"""
import argparse
import os
from typing import List, Optional

import uvicorn


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the Sentient Markets backend.")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)

    print("[Backend] Starting Sentient Markets backend")
    print(f"[Backend] Server: http://{args.host}:{args.port}")
    uvicorn.run(
        "sentient.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
