#!/usr/bin/env python3
"""
Replay a captured backend stream and print the resulting session state.

Usage:
    python scripts/replay_session.py capture.jsonl

The capture is newline-delimited JSON, one inbound message per line
(run_started, tree_delta, run_finished, widget_default). Prints the output
tree, widget values and forms data as JSON.
"""

import json
import logging
import sys

# Add project root to path
sys.path.insert(0, ".")

from client.config import settings
from client.services.replay import describe_session, replay_lines


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    with open(sys.argv[1], encoding="utf-8") as f:
        session, _ = replay_lines(f)

    print(json.dumps(describe_session(session), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
