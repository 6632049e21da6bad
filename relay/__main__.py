"""
Run the relay with uvicorn: `python -m relay`.
"""

import uvicorn

from relay.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("relay.app:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
