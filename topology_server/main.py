import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from topology.logutil import get_logger

from . import config
from .agents import router as agents_router
from .links import router as links_router
from .custom_nodes import router as custom_nodes_router
from .graph import router as graph_router
from .websocket_graph import router as graph_ws_router

logger = get_logger("server")

app = FastAPI(title="Callback Topology API", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(agents_router, prefix="/agents", tags=["agents"])
app.include_router(links_router, prefix="/links", tags=["links"])
app.include_router(custom_nodes_router, prefix="/custom-nodes", tags=["custom-nodes"])
app.include_router(graph_router, tags=["graph"])
app.include_router(graph_ws_router, tags=["websocket"])

if __name__ == "__main__":
    logger.info(f"starting topology server on {config.HOST}:{config.PORT}")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
