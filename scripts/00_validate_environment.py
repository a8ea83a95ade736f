import platform
import sys

from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vehavail.config import HOUSEHOLD_FILE, PERSON_FILE, LOGS_DIR  # noqa: E402
from vehavail.utils.logging import TRACKED_PACKAGES, package_versions, write_json  # noqa: E402


def main() -> None:
    versions = package_versions(TRACKED_PACKAGES)
    info = {
        "python_version": sys.version,
        "platform": platform.platform(),
        "household_file_exists": HOUSEHOLD_FILE.exists(),
        "person_file_exists": PERSON_FILE.exists(),
        "packages": versions,
        "missing_packages": sorted(pkg for pkg, v in versions.items() if v is None),
    }
    write_json(LOGS_DIR / "environment_check.json", info)
    print(f"Wrote {LOGS_DIR / 'environment_check.json'}")
    if info["missing_packages"]:
        print(f"Missing packages: {info['missing_packages']}")


if __name__ == "__main__":
    main()
