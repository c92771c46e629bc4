"""WSGI entry point for production deployment."""
import sys
import atexit
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_config
from utils.logger import setup_logging
from bootstrap import build_services, start_background, shutdown
from web.app import create_app

logger = logging.getLogger("governor.wsgi")

config = load_config()
setup_logging(config["logging"].get("level", "INFO"), config["logging"].get("file"))

services = build_services(config)
app = create_app(config, services)

start_background(services)
atexit.register(shutdown, services)
logger.info(f"Request Governor ready ({config['app']['environment']})")
