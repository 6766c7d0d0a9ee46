import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    force=True,  # override the JSON handler for interactive runs
)

from app import app

__all__ = ["app"]
