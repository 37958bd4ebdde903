"""``scenekeeper serve`` - run the API under uvicorn."""
from __future__ import annotations


def register(subparsers) -> None:
    p = subparsers.add_parser("serve", help="Start the FastAPI backend")
    p.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    p.add_argument("--reload", action="store_true", help="Auto-reload on code changes")
    p.set_defaults(func=run)


def run(args) -> int:
    import uvicorn

    print(f"\n  Starting backend on {args.host}:{args.port} ...")
    uvicorn.run("backend.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0
