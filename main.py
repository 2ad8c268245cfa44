from loguru import logger

from clinic_scheduling.api.scheduling_server import run_server
from clinic_scheduling.config import configure_logging, get_settings


if __name__ == "__main__":
    configure_logging()
    logger.info(f"Starting scheduling engine for {get_settings().clinic_name}")
    run_server()
