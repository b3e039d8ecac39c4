import os
from pathlib import Path

from dotenv import load_dotenv

# --- Environment ---
load_dotenv()

# --- Gateways ---
IMAGE_GATEWAY_BASE = os.getenv(
    "IMAGE_GATEWAY_BASE",
    "https://bafybeie6ohy6d4fbzl3cc2twv5a6l4ywez22oy4qlkkuf672e5mpusficq.ipfs.w3s.link",
).rstrip("/")
METADATA_GATEWAY_BASE = os.getenv("METADATA_GATEWAY_BASE", IMAGE_GATEWAY_BASE).rstrip("/")

# Relay retries any URL containing this host against FALLBACK_GATEWAY_BASE.
PRIMARY_GATEWAY_HOST = os.getenv("PRIMARY_GATEWAY_HOST", "ipfs.w3s.link")
FALLBACK_GATEWAY_BASE = os.getenv(
    "FALLBACK_GATEWAY_BASE",
    "https://ipfs.io/ipfs/bafybeie6ohy6d4fbzl3cc2twv5a6l4ywez22oy4qlkkuf672e5mpusficq",
).rstrip("/")

PLACEHOLDER_IMAGE_URL = os.getenv(
    "PLACEHOLDER_IMAGE_URL",
    "https://via.placeholder.com/1500x1500.png?text=Image+Not+Found",
)

# --- Relay ---
RELAY_PATH = "/relay"
RELAY_BASE_URL = os.getenv("RELAY_BASE_URL", "http://127.0.0.1:8000")
RELAY_TIMEOUT_SECONDS = float(os.getenv("RELAY_TIMEOUT_SECONDS", "30"))
RELAY_ALLOW_ORIGIN = os.getenv("RELAY_ALLOW_ORIGIN", "http://localhost:3000")
BROWSER_USER_AGENT = os.getenv(
    "BROWSER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
)
DIAGNOSTIC_EXCERPT_CHARS = 200

# --- Rendering ---
CANVAS_SIZE = int(os.getenv("CANVAS_SIZE", "1500"))
OVERLAY_DIR = Path(os.getenv("OVERLAY_DIR", str(Path(__file__).resolve().parent / "overlays")))
DOWNLOAD_PREFIX = os.getenv("DOWNLOAD_PREFIX", "canna-gm")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
