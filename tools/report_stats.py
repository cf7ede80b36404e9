import argparse
import datetime as dt
import re
import pathlib
import json

def read_lines(path: pathlib.Path):
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8", errors="ignore").splitlines()

def store_stats(store: dict) -> dict:
    """Per-partition counts of live / retired / withdrawn records, merges, comments, upvotes."""
    out = {}
    for partition, rows in (store.get("partitions") or {}).items():
        s = {"live": 0, "retired": 0, "withdrawn": 0, "merges": 0,
             "comments": 0, "merge_comments": 0, "upvotes": 0}
        for key, row in (rows or {}).items():
            doc = (row or {}).get("doc") or {}
            if key.startswith("report:"):
                if doc.get("merged_into"):
                    s["retired"] += 1
                elif doc.get("withdrawn"):
                    s["withdrawn"] += 1
                else:
                    s["live"] += 1
                    s["merges"] += max(0, int(doc.get("merged_count") or 1) - 1)
                    s["upvotes"] += int(doc.get("upvote_count") or 0)
            elif key.startswith("comment:"):
                s["comments"] += 1
                if doc.get("origin") == "merge_derived":
                    s["merge_comments"] += 1
        out[partition] = s
    return out

def log_stats(lines, cut: dt.datetime) -> tuple[dict, list]:
    rx = re.compile(r"^(\d{4}-\d{2}-\d{2})\s*//\s*(\d{2}:\d{2}:\d{2})([+-]\d{2}:\d{2})\s*-\s*(.*)$")
    c = {"starts": 0, "checks": 0, "created": 0, "merged": 0, "folded": 0,
         "conflicts": 0, "gave_up": 0, "rejected": 0, "rate": 0}
    relevant = []
    for line in lines:
        m = rx.match(line)
        if not m:
            continue
        try:
            ts = dt.datetime.fromisoformat(f"{m.group(1)}T{m.group(2)}{m.group(3)}")
        except ValueError:
            continue
        if ts < cut:
            continue

        rest = m.group(4)
        if rest.startswith("MAIN LOOP STARTED"): c["starts"] += 1; relevant.append(line)
        elif rest.startswith("CHECKS |"): c["checks"] += 1; relevant.append(line)
        elif rest.startswith("RATE |"): c["rate"] += 1; relevant.append(line)

        if "INGEST | created" in rest: c["created"] += 1
        elif "INGEST | merged" in rest: c["merged"] += 1
        elif "conflict" in rest and "INGEST |" in rest: c["conflicts"] += 1
        elif "INGEST | gave up" in rest: c["gave_up"] += 1; relevant.append(line)
        if "FOLD | folded" in rest: c["folded"] += 1; relevant.append(line)
        if "INTAKE | rejected" in rest: c["rejected"] += 1
    return c, relevant

def main():
    parser = argparse.ArgumentParser(description="Store and log statistics")
    parser.add_argument("--store", default="store.json")
    parser.add_argument("--log", default=None, help="intake log file (default: today's in logs/)")
    parser.add_argument("--minutes", type=int, default=60)
    args = parser.parse_args()

    now = dt.datetime.now().astimezone()
    cut = now - dt.timedelta(minutes=args.minutes)
    log_path = pathlib.Path(args.log or f"logs/intake-{now.strftime('%Y-%m-%d')}.log")

    store_path = pathlib.Path(args.store)
    store = {}
    if store_path.exists():
        try:
            store = json.loads(store_path.read_text(encoding="utf-8")) or {}
        except ValueError:
            print(f"unreadable store: {store_path}")

    print(f"STORE | {store_path}")
    totals = {}
    for partition, s in sorted(store_stats(store).items()):
        print(f"- {partition} | live={s['live']} retired={s['retired']} withdrawn={s['withdrawn']} | "
              f"merges={s['merges']} comments={s['comments']} (merge={s['merge_comments']}) upvotes={s['upvotes']}")
        for k, v in s.items():
            totals[k] = totals.get(k, 0) + v
    print(f"TOTAL | " + " ".join(f"{k}={v}" for k, v in totals.items()))

    c, relevant = log_stats(read_lines(log_path), cut)
    print(f"INTAKE | window={args.minutes}m | {cut.strftime('%Y-%m-%d %H:%M:%S%z')} .. {now.strftime('%Y-%m-%d %H:%M:%S%z')}")
    print(f"starts={c['starts']} checks={c['checks']} | created={c['created']} merged={c['merged']} "
          f"folded={c['folded']} | conflicts={c['conflicts']} gave_up={c['gave_up']} rejected={c['rejected']} | rate_lines={c['rate']}")
    print("--- last 25 relevant ---")
    for l in relevant[-25:]: print(l)

if __name__ == "__main__":
    main()
