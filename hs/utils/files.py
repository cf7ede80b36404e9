import json
import os
import tempfile
from pathlib import Path
from typing import Any, List, Union

PathLike = Union[str, Path]

def load_json(path: PathLike, default: Any) -> Any:
    """Parsed JSON, or `default` when the file is missing or unreadable."""
    p = Path(path)
    if not p.exists():
        return default
    try:
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return default

def load_json_list(path: PathLike) -> List[Any]:
    """Inbox-style files: anything that is not a JSON list reads as empty."""
    data = load_json(path, [])
    return data if isinstance(data, list) else []

def save_json(path: PathLike, obj: Any) -> None:
    """
    Write via a unique temp file in the same directory, then os.replace().
    Readers never see a half-written store or inbox.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(obj, ensure_ascii=False, indent=2) + "\n"

    fd, tmp_name = tempfile.mkstemp(prefix=p.name + ".", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, p)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

def ensure_file(path: PathLike, default_content: Any) -> None:
    if not Path(path).exists():
        save_json(path, default_content)
