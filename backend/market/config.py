# backend/market/config.py
from __future__ import annotations
import os


def _csv(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/market.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///market.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public base URL of the storefront; the payment gateway sends buyers back here
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000")

    # Hosted checkout (Midtrans Snap)
    PAYMENT_GATEWAY_SERVER_KEY = os.environ.get("MIDTRANS_SERVER_KEY")
    PAYMENT_GATEWAY_URL = os.environ.get(
        "MIDTRANS_SNAP_URL",
        "https://app.midtrans.com/snap/v1/transactions",
    )
    PAYMENT_REDIRECT_BASE_URL = os.environ.get(
        "MIDTRANS_REDIRECT_BASE_URL",
        "https://app.midtrans.com/snap/v2/vtweb",
    )
    PAYMENT_GATEWAY_TIMEOUT = float(os.environ.get("MIDTRANS_TIMEOUT", "15"))

    # Ticket QR images are rendered by an external service
    QR_RENDER_URL = os.environ.get("QR_RENDER_URL", "https://api.qrserver.com/v1/create-qr-code/")
    QR_RENDER_TIMEOUT = float(os.environ.get("QR_RENDER_TIMEOUT", "10"))

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ))

    # httpx transports for the outbound calls; None uses the network
    PAYMENT_GATEWAY_TRANSPORT = None
    QR_RENDER_TRANSPORT = None
