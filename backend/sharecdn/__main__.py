import logging

import uvicorn

from sharecdn.config import settings


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("sharecdn.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
