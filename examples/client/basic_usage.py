"""
Basic usage example of CourierClient.

Logs in to a gateway with the current cycle key, browses the file root and
downloads a file. Pass the base URL and the key on the command line; for a
``.onion`` URL a local Tor SOCKS proxy is used.
"""

import logging
import sys
from pathlib import Path

from onioncourier.client import CourierClient


def main() -> None:
    # Configure logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    if len(sys.argv) < 3:  # noqa: PLR2004
        logger.error("usage: basic_usage.py BASE_URL KEY [FILE]")
        sys.exit(2)
    base_url, key = sys.argv[1], sys.argv[2]
    proxies = CourierClient.tor_proxies() if ".onion" in base_url else None
    client = CourierClient(base_url, proxies=proxies)

    try:
        client.login(key)
        listing = client.list_files()
        logger.info("Files in %s:", listing.cwd)
        for entry in listing.entries:
            logger.info("  %s%s", entry.name, "/" if entry.is_dir else "")

        if len(sys.argv) > 3:  # noqa: PLR2004
            name = sys.argv[3]
            Path(Path(name).name).write_bytes(client.download(name))
            logger.info("Downloaded %s", name)

        client.quit()
    except Exception:
        logger.exception("Error")
        sys.exit(1)


if __name__ == "__main__":
    main()
