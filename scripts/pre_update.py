from __future__ import annotations

from safety.check import ensure_directories
from safety.pre_update import run_pre_update
from safety.state import SafetyPaths


def _main() -> int:
    paths = SafetyPaths.from_env()
    ensure_directories(paths)
    return run_pre_update(paths)


if __name__ == "__main__":
    raise SystemExit(_main())
