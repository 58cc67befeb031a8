import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from codeviz.routers import github, repository, session
from codeviz.services.session import AppState


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    client = getattr(app.state, "github_client", None)
    if client is not None:
        await client.aclose()


app = FastAPI(
    title="Codebase Visualizer Server",
    description="Git-aware treemap data and incremental render plans for a codebase.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.session = AppState()

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for local development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(repository.router)
app.include_router(session.router)
app.include_router(github.router)


@app.get("/api-status")
async def root():
    return {"message": "Codebase Visualizer is running. Visit /docs for API documentation."}


# Serve the front end when a build is present next to the server.
client_dist = os.environ.get("CODEVIZ_CLIENT_DIST", "../client/dist")
if os.path.exists(client_dist):
    app.mount("/", StaticFiles(directory=client_dist, html=True), name="static")
