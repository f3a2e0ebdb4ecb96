import logging
import os

import uvicorn

from minisearch_server.main import create_app

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main(run_server: bool = True) -> int:
    """Run the MiniSearch server or exit successfully for CLI usage."""
    if run_server:
        host = os.environ.get("HOST", "127.0.0.1")
        port = int(os.environ.get("PORT", "7860"))
        uvicorn.run(create_app(), host=host, port=port)  # pragma: no cover

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
