"""
Onion address status check example.

Polls the gateway's public status endpoint and logs every time the onion
address rotates.
"""

import logging
import sys
import time

import requests

from onioncourier.client import CourierClient


def main() -> None:
    # Configure logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8080"
    client = CourierClient(base_url)
    last_address = None

    try:
        for i in range(50):
            try:
                status = client.status()
            except requests.HTTPError as err:
                logger.info("Status check %d: not published yet (%s)", i + 1, err)
            else:
                if status.onion_address != last_address:
                    logger.info("New address: %s", status.onion_address)
                    logger.info("  Valid until: %s UTC", status.valid_until)
                    last_address = status.onion_address
            time.sleep(2)

        logger.info("Status check example completed")

    except requests.ConnectionError:
        logger.exception("Gateway unreachable")
        sys.exit(1)


if __name__ == "__main__":
    main()
