"""FastAPI app exposing the recipes schema with the GraphiQL playground.

Run this file to start a local server and open http://127.0.0.1:8000/graphql

Requests are anonymous unless they carry identity headers:
  X-User   user name placed in the request context
  X-Roles  comma separated roles of that user (e.g. "admin")

Environment variables:
  GATEDQL_LOG_LEVEL  log level of the gatedql logger (default WARNING);
                     DEBUG shows denied fields and rule tree details
"""
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse

from strawberry.fastapi import GraphQLRouter

from examples.recipes import schema

logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
logging.getLogger("gatedql").setLevel(os.getenv("GATEDQL_LOG_LEVEL", "WARNING").upper())

app = FastAPI(title="gatedql recipes playground")


@app.get("/")
async def root() -> RedirectResponse:
    return RedirectResponse(url="/graphql")


async def get_context(request: Request):
    # a fresh dict per request also scopes the rule cache to the request
    name = request.headers.get("x-user")
    if not name:
        return {"user": None}
    roles = [r.strip() for r in request.headers.get("x-roles", "").split(",") if r.strip()]
    return {"user": {"name": name, "roles": roles}}


graphql_router = GraphQLRouter(
    schema,
    graphiql=True,  # enables GraphiQL playground UI
    context_getter=get_context,
)

app.include_router(graphql_router, prefix="/graphql")


if __name__ == "__main__":
    # Local dev runner
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
