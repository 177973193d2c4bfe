from __future__ import annotations

from safety.check import ensure_directories
from safety.check import perform_safety_check
from safety.state import SafetyPaths


def _main() -> int:
    print("[Safety] Running startup safety check...")
    paths = SafetyPaths.from_env()
    ensure_directories(paths)
    result = perform_safety_check(paths)
    if result.rolled_back:
        print("[Safety] Rolled back to the previous version")
    print(f"[Safety] Safety check finished with exit code {result.exit_code}")
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(_main())
