import logging

from fastapi import FastAPI

from backoffice.fastapi.core.init_settings import global_settings
from backoffice.fastapi.core.lifespan import lifespan
from backoffice.fastapi.core.middleware import setup_cors
from backoffice.fastapi.core.routers import setup_routers

logging.basicConfig(level=logging.INFO)


def create_app() -> FastAPI:
    app = FastAPI(
        title=global_settings.APP_NAME,
        version=global_settings.APP_VERSION,
        lifespan=lifespan,
    )
    setup_cors(app)
    setup_routers(app)

    @app.get("/health", tags=["main"])
    async def health():
        return {"status": "ok", "env": global_settings.ENV_MODE}

    return app


app = create_app()
