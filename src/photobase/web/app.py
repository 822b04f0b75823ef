"""
Photobase Web API - FastAPI application.

Thin HTTP surface over the query engine and RPC dispatcher. Every data
route returns the uniform {data, error} shape with HTTP 200; only auth
failures on the cron route and malformed bodies produce error statuses.
"""

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from photobase import __version__
from photobase.identity import CallerIdentity
from photobase.query import QueryRequest, RpcRequest, execute_query
from photobase.rpc import execute_rpc
from photobase.web.auth import get_caller_identity, require_cron_secret

logger = logging.getLogger(__name__)

app = FastAPI(title="Photobase", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# =============================================================================
# Data routes
# =============================================================================


@app.post("/api/db/query")
async def db_query(
    request: QueryRequest,
    identity: CallerIdentity = Depends(get_caller_identity),
) -> dict[str, Any]:
    """Run one structured query as the caller."""
    result = await execute_query(request, identity)
    return result.model_dump()


@app.post("/api/db/rpc")
async def db_rpc(
    request: RpcRequest,
    identity: CallerIdentity = Depends(get_caller_identity),
) -> dict[str, Any]:
    """Call one catalog procedure as the caller."""
    result = await execute_rpc(request.function_name, request.args, identity)
    return result.model_dump(include={"data", "error"})


# =============================================================================
# Scheduled jobs
# =============================================================================


@app.post("/api/cron/maintenance", dependencies=[Depends(require_cron_secret)])
async def cron_maintenance() -> dict[str, Any]:
    """Run maintenance as the system identity."""
    result = await execute_rpc("run_maintenance_tasks", {}, CallerIdentity.system())

    if result.error:
        logger.error(f"Maintenance failed: {result.error.message}")
        raise HTTPException(status_code=500, detail=result.error.message)

    logger.info("Maintenance completed")
    return {"success": True, "data": result.data}
