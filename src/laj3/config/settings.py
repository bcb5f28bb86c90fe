import os
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))
load_dotenv()

SERVER_HOST = os.getenv("SERVER_HOST", "127.0.0.1")
SERVER_PORT = int(os.getenv("SERVER_PORT", 7878))
METRICS_PORT = int(os.getenv("METRICS_PORT", 0))
POOL_SIZE = int(os.getenv("POOL_SIZE", 10))
CONNECTION_TIMEOUT = float(os.getenv("CONNECTION_TIMEOUT", 30))

STORAGE_DIR = os.getenv("STORAGE_DIR", os.path.abspath("."))
SERVER_MANIFEST = os.getenv("SERVER_MANIFEST", os.path.join(STORAGE_DIR, "base.dict"))
OUTPUT_FILE = os.getenv("OUTPUT_FILE", "output.zip")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"
