import time
from pathlib import Path
from typing import Dict, Any

from ..utils.log import log_line, setup_logging
from ..utils.files import load_json, load_json_list, save_json, ensure_file
from .constants import LOOP_DELAY_S, VERSION
from .engine import ReportEngine
from .pipeline import IntakePipeline

def run_loop(cfg: Dict[str, Any], one_shot: bool = False) -> None:
    setup_logging(Path(cfg.get("log_dir") or "logs"))
    log_line(f"MAIN LOOP STARTED (Intake v{VERSION})", "INFO")

    pending_path = Path(cfg.get("inbox_path") or "pending.json")
    rejected_path = Path(cfg.get("rejected_path") or "rejected.json")
    delay = float(cfg.get("loop_delay_s", LOOP_DELAY_S))

    # 1. Load state
    ensure_file(pending_path, [])
    pending = load_json(pending_path, [])
    rejected = load_json_list(rejected_path)
    if not isinstance(pending, list):
        log_line(f"INBOX | {pending_path} is not a list, starting empty", "WARN")
        pending = []

    engine = ReportEngine.from_cfg(cfg)
    pipeline = IntakePipeline(cfg, engine, pending, rejected)

    # 2. Loop
    while True:
        try:
            # the inbox file was saved at the end of the last pass; pick up
            # whatever other writers appended since
            pipeline.pending = load_json_list(pending_path)

            res = pipeline.run_cycle()
            log_line(
                f"CHECKS | processed={res.processed_count} created={res.created_count} "
                f"merged={res.merged_count} rejected={res.rejected_count} "
                f"retry={res.retry_count} pending={len(pipeline.pending)}",
                "INFO",
            )
            if one_shot:
                break
            time.sleep(delay)

        except KeyboardInterrupt:
            log_line("MAIN LOOP STOPPED (KeyboardInterrupt)", "INFO")
            break
        except Exception as e:
            log_line(f"MAIN LOOP ERROR | err={e!r}", "ERROR")
            if one_shot:
                break
            time.sleep(delay)
        finally:
            # Always save state, even on error
            try:
                save_json(pending_path, pipeline.pending)
                save_json(rejected_path, pipeline.rejected)
            except OSError as se:
                log_line(f"STATE SAVE ERROR | {se!r}", "ERROR")
