"""Simple page counter that increments on every run.

Connects to the Redis instance named by ``REDSHELVE_HOST`` / ``REDSHELVE_PORT``
/ ``REDSHELVE_DB`` (defaults to localhost:6379/0).
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

import redshelve
from redshelve import ConnectionOptions, Model, attribute, counter


class Page(Model):
    path = attribute(unique=True)
    hits = counter()


def main() -> None:
    redshelve.connect(ConnectionOptions.from_env())
    page = Page.with_("path", "/counter") or Page.create(path="/counter")
    page.incr("hits")

    print(f"This script has been run {page.hits} times.")


if __name__ == "__main__":
    main()
