"""CORS configuration."""

import os

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "EE_ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ).split(",")
    if origin.strip()
]
