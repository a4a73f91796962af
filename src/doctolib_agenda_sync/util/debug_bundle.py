from __future__ import annotations

import time
import zipfile
from pathlib import Path


def create_debug_bundle(
    *,
    debug_dir: str,
    log_file: str,
    out_dir: str = "data",
) -> Path:
    """
    Zip the debug captures and the log file into one shareable archive.

    Never includes the browser profile, `.env` or config files (they hold session
    cookies and credentials).
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    out_path = out_root / f"debug_bundle_{stamp}.zip"

    dbg = Path(debug_dir)
    log = Path(log_file)

    def _add_file(z: zipfile.ZipFile, file_path: Path, arcname: str) -> None:
        try:
            if file_path.exists() and file_path.is_file():
                z.write(file_path, arcname=arcname)
        except OSError:
            # a capture may disappear while we bundle; skip it
            return

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        _add_file(z, log, arcname=log.name)

        if dbg.is_dir():
            for p in sorted(dbg.rglob("*")):
                if p.is_file():
                    _add_file(z, p, arcname=str(Path("debug") / p.relative_to(dbg)))

    return out_path
