#!/usr/bin/env python
from __future__ import annotations
import os, sys, argparse
from pathlib import Path
from uvicorn import Config, Server

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
os.chdir(ROOT)
os.environ.setdefault("PYTHONUNBUFFERED", "1")
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

def main():
    parser = argparse.ArgumentParser(description="Start the X-Ray trace API")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8000)))
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for local development"
    )
    args = parser.parse_args()

    config_params = {
        "app": "config.asgi:application",
        "host": args.host,
        "port": args.port,
        "loop": "asyncio",
        "http": "h11",
        "log_level": os.environ.get("LOG_LEVEL", "info").lower(),
        "access_log": False,
        "timeout_keep_alive": 75,
    }

    if args.reload:
        config_params.update({
            "reload": True,
            "reload_dirs": ["traces", "config"],
            "reload_delay": 1.0,
        })

    cfg = Config(**config_params)

    print(f"Project root: {ROOT}", flush=True)
    print(f"Binding: {cfg.host}:{cfg.port}  Loop={cfg.loop} HTTP={cfg.http}", flush=True)
    print(f"Ingest endpoint: http://{cfg.host}:{cfg.port}/api/runs", flush=True)
    Server(cfg).run()

if __name__ == "__main__":
    main()
