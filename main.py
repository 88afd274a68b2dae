from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from link_digest import config
from link_digest.server import serve


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    try:
        settings = config.Settings.from_env()
    except ValueError as exc:
        logging.error("Missing configuration: %s", exc)
        sys.exit(1)

    try:
        serve(settings)
    except Exception as exc:  # noqa: BLE001
        logging.exception("Server failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
