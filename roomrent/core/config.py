import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Backend REST API (rooms, tenants, payments, auth)
API_BASE_URL = os.getenv("ROOMRENT_API_URL", "http://localhost:5000/api").rstrip("/")
BACKEND_TIMEOUT = float(os.getenv("BACKEND_TIMEOUT", "20"))

# Razorpay checkout widget
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_CHECKOUT_URL = os.getenv("RAZORPAY_CHECKOUT_URL", "https://checkout.razorpay.com/v1/checkout.js")
MERCHANT_NAME = os.getenv("MERCHANT_NAME", "RoomRent Pro")
CHECKOUT_THEME_COLOR = os.getenv("CHECKOUT_THEME_COLOR", "#3B82F6")
CURRENCY = os.getenv("CURRENCY", "INR")

# Seconds between status checks while waiting for a cash confirmation
PAYMENT_POLL_INTERVAL = float(os.getenv("PAYMENT_POLL_INTERVAL", "30"))

# Seconds a payment session survives without a request from the tenant,
# and how long a confirmed or cancelled one is kept around
FLOW_IDLE_TIMEOUT = float(os.getenv("FLOW_IDLE_TIMEOUT", "1800"))
FLOW_FINAL_TIMEOUT = float(os.getenv("FLOW_FINAL_TIMEOUT", "300"))

# CORS: comma-separated origins for the tenant/admin front-end
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()]

if not os.getenv("ROOMRENT_API_URL"):
    logger.warning(f"ROOMRENT_API_URL not set, using default backend at {API_BASE_URL}")

if not RAZORPAY_KEY_ID:
    logger.warning("RAZORPAY_KEY_ID not set; online checkout relies on the key returned by the backend")
