from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import uvicorn

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"


def ensure_database_migrated() -> None:
    """Bring the progress-cache schema up to date before serving."""
    if not ALEMBIC_INI.exists():
        print("[run-server] alembic.ini not found; skipping migrations.")
        return

    print("[run-server] Applying progress-cache migrations…")
    try:
        subprocess.run(
            [sys.executable, "-m", "alembic", "-c", str(ALEMBIC_INI), "upgrade", "head"],
            cwd=str(PROJECT_ROOT),
            check=True,
        )
    except subprocess.CalledProcessError as exc:
        raise RuntimeError(f"Alembic upgrade failed with exit code {exc.returncode}") from exc


def main() -> None:
    try:
        ensure_database_migrated()
    except Exception as exc:  # pragma: no cover - developer helper
        print(f"[run-server] Warning: {exc}")

    uvicorn.run(
        "selfassessment.web.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
