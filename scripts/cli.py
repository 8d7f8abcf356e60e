"""
CLI to replay recorded per-frame features through a classifier session -> JSON.

Each line of the input file is one frame: a JSON list of {"name", "score"}
pairs (an empty list means no face was detected).
"""
from __future__ import annotations
import argparse, asyncio, json, os
from typing import Dict, List

from mood.config import Settings
from mood.session import DetectionSession


async def replay(path: str, settings: Settings) -> List[Dict]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Features file not found: {path}")
    session = DetectionSession(settings)
    res = await session.start()
    if not res.ok:
        raise RuntimeError(res.error)
    updates: List[Dict] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                update = session.process_features(json.loads(line))
                updates.append(update.model_dump(mode="json", by_alias=True))
    finally:
        session.dispose()
    return updates


def main(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("--features", required=True, help="Path to JSONL file of per-frame feature lists")
    p.add_argument("--out", default="output/classification.json", help="Path to output JSON")
    args = p.parse_args(argv)

    result = asyncio.run(replay(args.features, Settings()))
    print(json.dumps(result, indent=2, ensure_ascii=False))

    # Also write to file
    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(result, f, indent=2, ensure_ascii=False)
    print(f"Classification written to {args.out}")

if __name__ == "__main__":
    main()
