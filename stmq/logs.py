import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file="", level="INFO"):
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, force=True)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, force=True)
    # urllib3 logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
