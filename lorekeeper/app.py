from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from lorekeeper.routes import router

load_dotenv(Path(__file__).parent.parent / ".env")


def create_app() -> FastAPI:
    app = FastAPI(title="Lorekeeper")
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn
app = create_app()
