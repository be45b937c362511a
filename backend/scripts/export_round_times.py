"""Write the combined qualifying/race/fastest-lap CSV for a round.

Reads either a stored round (``--round-id``, via Supabase or the local JSON
fallback) or a standalone JSON payload (``--input``) shaped like the
``POST /times/csv`` body.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

sys.path.append(str(Path(__file__).resolve().parents[1]))

from roundtimes_core import AllTimesTable, DataStore

logger = logging.getLogger(__name__)


def _load_payload(path: Path) -> Dict[str, Any]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return {
        "categories": {
            "qualifying": raw.get("qualifying"),
            "race": raw.get("race"),
            "fastest_lap": raw.get("fastestLap", raw.get("fastest_lap")),
        },
        "raceEvents": raw.get("raceEvents") or [],
        "divisions": raw.get("divisions") or [],
        "namingParts": raw.get("namingParts") or [],
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export a round's all-times table as CSV.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--round-id", type=int)
    source.add_argument("--input", type=Path)
    parser.add_argument("--sort", default=None, help="qualifying, race or fastest_lap")
    parser.add_argument("--category", default=None, help="export a single category only")
    parser.add_argument("--output", type=Path, default=None)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.round_id is not None:
            data = DataStore().fetch_round_times(args.round_id)
        else:
            data = _load_payload(args.input)
        table = AllTimesTable.for_category(args.category) if args.category else AllTimesTable()
        table.load(data["categories"], data["raceEvents"], data["divisions"])
        document = table.export(sort_key=args.sort, naming_parts=data["namingParts"])
        output = args.output or Path(document.filename)
        output.write_text(document.content, encoding="utf-8")
    except (OSError, ValueError, RuntimeError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    logger.debug("Wrote %d bytes", len(document.content))
    print(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
