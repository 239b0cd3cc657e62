from __future__ import annotations

import argparse
import json
import sys

from trackcore.app.runner import ingest, overview


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="trackcore")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_ingest = sub.add_parser("ingest", help="Store events from a JSONL file")
    p_ingest.add_argument("--config", default="config/track.yaml")
    p_ingest.add_argument("events", help="one camelCase event object per line")

    p_stats = sub.add_parser("stats", help="Print daily overview stats as JSON")
    p_stats.add_argument("--config", default="config/track.yaml")
    p_stats.add_argument("--start", required=True, help="YYYY-MM-DD")
    p_stats.add_argument("--end", required=True, help="YYYY-MM-DD")

    args = parser.parse_args(argv)

    if args.cmd == "ingest":
        result = ingest(args.config, args.events)
        # minimal stdout signal
        print(
            f"events={result.num_events} inserted={result.num_inserted} "
            f"duckdb={result.duckdb_path}"
        )
        return 0

    if args.cmd == "stats":
        print(json.dumps(overview(args.config, args.start, args.end), indent=2))
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
