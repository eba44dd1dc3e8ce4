from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from container import build_container
from routes import events, pipeline, sessions

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_container()
    await services.start()
    app.state.services = services
    try:
        yield
    finally:
        await services.shutdown()


app = FastAPI(title="ContextKeeper API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events.router)
app.include_router(sessions.router)
app.include_router(pipeline.router)


@app.get("/")
def health():
    return {"status": "ok", "service": "contextkeeper"}
