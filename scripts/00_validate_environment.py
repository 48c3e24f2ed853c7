import platform
import sys

from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from biodiv_ensemble.config import DEFAULT_DATA_FILE, DEFAULT_FUTURE_FILE, LOGS_DIR  # noqa: E402
from biodiv_ensemble.utils.logging import package_versions, write_json  # noqa: E402


def main() -> None:
    info = {
        "python_version": sys.version,
        "platform": platform.platform(),
        "packages": package_versions(),
        "data_file_exists": DEFAULT_DATA_FILE.exists(),
        "future_file_exists": DEFAULT_FUTURE_FILE.exists(),
    }
    missing = sorted(pkg for pkg, version in info["packages"].items() if version is None)
    info["missing_packages"] = missing
    write_json(LOGS_DIR / "environment_check.json", info)
    if missing:
        print(f"Missing packages: {', '.join(missing)}")
    print("Wrote outputs/logs/environment_check.json")


if __name__ == "__main__":
    main()
