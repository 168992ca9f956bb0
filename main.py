from dotenv import load_dotenv
load_dotenv()  # Load .env file before anything else

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from converge.agents.orchestrator import MigrationOrchestrator
from converge.api import plan_router
from converge.core import Settings, get_logger, setup_logging

setup_logging()
logger = get_logger("main")

app = FastAPI(title="CONVERGE Backend")

# One orchestrator per process; it holds no per-request state
app.state.orchestrator = MigrationOrchestrator(Settings.from_env())
logger.info(f"Planning engine ready (model calls enabled: {app.state.orchestrator.enabled})")

# CORS
origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(plan_router)


@app.get("/health")
def health():
    orchestrator = getattr(app.state, "orchestrator", None)
    return {
        "status": "ok",
        "planningEnabled": bool(orchestrator and orchestrator.enabled),
    }


@app.get("/")
def read_root():
    return {"message": "CONVERGE Backend is Running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=False)
