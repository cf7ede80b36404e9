#!/usr/bin/env python3
# Hide & Seek intake service (submission inbox -> dedup/merge engine -> store)
#
# Files (working directory, names configurable in config.json):
# - config.json     matching policy, geocoder, paths
# - taxonomy.json   major -> sub -> leaf category taxonomy
# - pending.json    inbox: [{"user_id": "...", "payload": {...}}, ...]
# - rejected.json   items that failed validation (with reason)
# - store.json      partitioned record store (records, comments, upvotes)
import argparse
import sys
from pathlib import Path

from hs.core.config import load_config
from hs.core.main_loop import run_loop

def main() -> int:
    parser = argparse.ArgumentParser(description="Run the report intake loop")
    parser.add_argument("--config", default="config.json")
    parser.add_argument("--once", action="store_true", help="process the inbox once and exit")
    args = parser.parse_args()

    cfg = load_config(Path(args.config))
    run_loop(cfg, one_shot=args.once)
    return 0

if __name__ == "__main__":
    sys.exit(main())
