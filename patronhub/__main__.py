"""
Run the API server: ``python -m patronhub``.
"""

import uvicorn

from .config import config


def main():
    uvicorn.run("patronhub.server:app", host="127.0.0.1", port=config.PORT)


if __name__ == "__main__":
    main()
