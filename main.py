"""Housekeeping store — run the reference backend locally.

    python main.py                        serve ./data on port 3001
    python main.py --demo                 seed a demo day first
    python main.py --data-dir /tmp/hk --port 3100 --reload

Point a dashboard client at it with:
    HOUSEKEEPING_API_URL=http://localhost:3001/api
    HOUSEKEEPING_FILE_STORE_URL=http://localhost:3001/contents/data
"""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "3001"))


def main():
    parser = argparse.ArgumentParser(description="Housekeeping reference store")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: $DATA_DIR or ./data)")
    parser.add_argument("--port", type=int, default=BACKEND_PORT)
    parser.add_argument("--demo", action="store_true",
                        help="Overwrite stored data with a demo day before serving")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    data_dir = (args.data_dir or Path(os.getenv("DATA_DIR", ROOT / "data"))).resolve()
    # the app module reads DATA_DIR when uvicorn imports it
    os.environ["DATA_DIR"] = str(data_dir)

    if args.demo:
        from backend import storage
        from backend.demo import create_demo_data
        storage.init_storage(data_dir)
        create_demo_data()

    print(f"Serving {data_dir} on http://localhost:{args.port}")
    print(f"  structured store: HOUSEKEEPING_API_URL=http://localhost:{args.port}/api")
    print(f"  file store:       HOUSEKEEPING_FILE_STORE_URL=http://localhost:{args.port}/contents/data")
    uvicorn.run("backend.app:app", host=HOST, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
