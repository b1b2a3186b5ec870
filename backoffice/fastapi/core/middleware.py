import logging
import os

from fastapi.middleware.cors import CORSMiddleware

from backoffice.fastapi.core.init_settings import global_settings

logger = logging.getLogger(__name__)


def cors_origins():
    """Allowed browser origins: the client app, localhost and ADDITIONAL_CORS_ORIGINS."""
    origins = [
        global_settings.CLIENT_URL,
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:8000",
    ]

    # Add API_BASE_URL if it's different from CLIENT_URL and not empty
    if global_settings.API_BASE_URL and global_settings.API_BASE_URL != global_settings.CLIENT_URL:
        origins.append(global_settings.API_BASE_URL)

    additional_origins = os.getenv("ADDITIONAL_CORS_ORIGINS", "")
    if additional_origins:
        origins.extend([origin.strip() for origin in additional_origins.split(",")])

    # Remove empty strings and duplicates, keep order
    return list(dict.fromkeys(origin for origin in origins if origin))


def setup_cors(app):
    # Check if we should allow all origins (for debugging)
    allow_all_origins = os.getenv("ALLOW_ALL_ORIGINS", "false").lower() == "true"

    if allow_all_origins:
        logger.warning("CORS is set to allow ALL origins. Only use this for debugging!")
        origins = ["*"]
        allow_credentials = False  # Can't use credentials with wildcard origins
    else:
        origins = cors_origins()
        allow_credentials = True

    logger.info("CORS allowed origins: %s", origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Accept-Language"],
    )
