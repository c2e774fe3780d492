import logging

import uvicorn

from .config import get_settings
from .logging_utils import configure_logging


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_pretty)
    host, port = settings.bind_host_port()
    logging.getLogger("minio_lite_admin").info(f"server starting on {host}:{port}", extra={"event": "startup"})
    # log_config=None keeps the handlers installed by configure_logging
    uvicorn.run("minio_lite_admin.app:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
