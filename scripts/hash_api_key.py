from __future__ import annotations

import secrets
import sys

from gatekeeper.web.api import hash_api_key


def main() -> None:
    key = sys.argv[1] if len(sys.argv) > 1 else secrets.token_urlsafe(32)
    print("API key (shown once, send it as X-API-Key):")
    print(key)
    print("Add this digest to web.api_key_hashes in config/gatekeeper.json:")
    print(hash_api_key(key))


if __name__ == "__main__":
    main()
