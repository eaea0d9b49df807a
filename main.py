import logging

import uvicorn

from resume_mailer.config import load_config
from resume_mailer.server import build_app

config = load_config()
logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format='[%(asctime)s] [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    force=True  # Force reconfiguration to avoid duplicate handlers
)


if __name__ == "__main__":
    app = build_app(config)
    uvicorn.run(app, host=config.host, port=config.port)
