import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from addon_repo.api.repository import router as repository_router
from addon_repo.data.repository import (
    get_last_build_result,
    get_repository_config,
    get_repository_index,
    initialize_repository,
    shutdown_repository,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Kodi Addon Repository",
    version="0.1.0",
    description="Builds addons.xml from a directory of Kodi addons and serves it with the addon archives.",
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# HTML templates (Jinja2)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


@app.on_event("startup")
async def startup_event() -> None:
    """
    Load the configuration, build and publish the index, and start the
    periodic rebuild task.
    """
    await initialize_repository()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await shutdown_repository()


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    """
    Landing page listing the indexed addons and any skipped packages.
    """
    config = get_repository_config()
    repo_index = get_repository_index()
    result = get_last_build_result()
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "title": config.repository_name,
            "description": config.description,
            "addons": list(repo_index.descriptors) if repo_index else [],
            "failures": result.failures if result else [],
            "index_checksum": repo_index.index_checksum.hex() if repo_index else None,
            "algorithm": repo_index.algorithm if repo_index else None,
        },
    )


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok", "indexed": get_repository_index() is not None}


app.include_router(repository_router, tags=["repository"])


if __name__ == "__main__":
    """
    Allow running `python -m addon_repo.main` to start the Uvicorn
    development server.
    """
    import uvicorn

    uvicorn.run(
        "addon_repo.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
