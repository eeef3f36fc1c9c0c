from fastapi import FastAPI
import logging

from thimblerig.api.routes import router
from thimblerig.config import get_log_level, load_settings
from thimblerig.table import TableRegistry
from thimblerig.websocket_hub import hub

app = FastAPI(title="thimblerig", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)

app.state.registry = TableRegistry(settings=load_settings(), hub=hub)


@app.on_event("shutdown")
async def _shutdown() -> None:
    await app.state.registry.close()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "thimblerig", "version": "0.1.0"}
