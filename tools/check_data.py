#!/usr/bin/env python3
"""
Script to check the consistency of a JSON file store (store.json).
For every canonical record row (`report:` keys) it validates:
* Merge bookkeeping: merged_count equals the number of history entries and
  contributor_ids equals the set of reporters in the history. Withdrawn
  records must have an empty history.
* Category: the leaf resolves in taxonomy.json to the stored (major, sub).
* Coordinate validity: latitude and longitude are numeric and within valid
  ranges (-90 <= lat <= 90, -180 <= lon <= 180).
* Partition: the id ends with "@<partition>" of the row it is stored in.
* Redirects: merged_into points at a record that exists and lists the
  retired record in its folded_ids (otherwise the fold never finished).
Comment and upvote rows must point at an existing record.
If any issues are detected, they are printed to standard output. Each line
contains the issue type and the record (or row) id. The script exits with a
non-zero status if issues are found.
Usage:
    python tools/check_data.py --store store.json --taxonomy taxonomy.json
"""
import argparse, json, sys
from pathlib import Path

def load_json(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise SystemExit(f"File not found: {path}")

def leaf_index(taxonomy: dict) -> dict[str, tuple[str, str]]:
    out: dict[str, tuple[str, str]] = {}
    for major, subs in (taxonomy or {}).items():
        for sub, leaves in (subs or {}).items():
            for leaf in leaves or []:
                out[str(leaf)] = (major, sub)
    return out

def check_store(store: dict, taxonomy: dict) -> list[tuple[str, str]]:
    errors: list[tuple[str, str]] = []
    leaves = leaf_index(taxonomy)
    partitions = store.get("partitions", {}) or {}

    folded_by: dict[str, set[str]] = {}
    for partition, rows in partitions.items():
        for key, row in rows.items():
            if key.startswith("report:"):
                doc = (row or {}).get("doc") or {}
                folded_by[f"{key[len('report:'):]}@{partition}"] = set(doc.get("folded_ids") or [])
    report_ids = set(folded_by)

    for partition, rows in partitions.items():
        for key, row in rows.items():
            doc = (row or {}).get("doc") or {}
            if key.startswith("comment:") or key.startswith("upvote:"):
                target = doc.get("report_id")
                if target not in report_ids:
                    errors.append(("dangling_row", f"{partition}/{key}"))
                continue
            if not key.startswith("report:"):
                errors.append(("unknown_row", f"{partition}/{key}"))
                continue

            rid = doc.get("id") or f"{key}@{partition}"
            if rid != f"{key[len('report:'):]}@{partition}" or doc.get("partition_key") != partition:
                errors.append(("wrong_partition", rid))

            history = doc.get("history") or []
            if doc.get("withdrawn"):
                if history:
                    errors.append(("withdrawn_with_history", rid))
            else:
                if doc.get("merged_count") != len(history):
                    errors.append(("merged_count_mismatch", rid))
                if not history:
                    errors.append(("empty_history", rid))
            reporters = sorted({str(h.get("reporter_id")) for h in history})
            if sorted(doc.get("contributor_ids") or []) != reporters:
                errors.append(("contributors_mismatch", rid))

            cat = doc.get("category") or {}
            found = leaves.get(str(cat.get("leaf")))
            if found is None:
                errors.append(("unknown_category", rid))
            elif found != (cat.get("major"), cat.get("sub")):
                errors.append(("category_mismatch", rid))

            loc = doc.get("location") or {}
            lat, lon = loc.get("lat"), loc.get("lon")
            if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
                errors.append(("invalid_coordinates", rid))
            elif not (-90 <= lat <= 90 and -180 <= lon <= 180):
                errors.append(("out_of_bounds_coordinates", rid))

            target = doc.get("merged_into")
            if target and target not in report_ids:
                errors.append(("dangling_merged_into", rid))
            elif target and rid not in folded_by[target]:
                errors.append(("unapplied_fold", rid))
    return errors

def main() -> int:
    parser = argparse.ArgumentParser(description="Validate a JSON record store")
    parser.add_argument("--store", default="store.json")
    parser.add_argument("--taxonomy", default="taxonomy.json")
    args = parser.parse_args()
    store = load_json(Path(args.store))
    taxonomy = load_json(Path(args.taxonomy))
    errors = check_store(store, taxonomy)
    if errors:
        for issue, rid in errors:
            print(f"{issue}\t{rid}")
        print(f"\nFound {len(errors)} issues")
        return 1
    else:
        print("No issues detected")
        return 0

if __name__ == "__main__":
    sys.exit(main())
