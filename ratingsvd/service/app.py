"""FastAPI service answering rating predictions from a persisted (U, S, V) model."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException

from ..errors import RatingPipelineError
from ..paths import ProjectPaths, get_repo_root, resolve_path
from ..persistence import load_factors
from ..reconstruct import Reconstructor
from ..utils import setup_logging
from .schemas import (
    CellPrediction,
    CellPredictRequest,
    CellPredictResponse,
    ModelInfo,
    UserPredictRequest,
    UserPredictResponse,
)

logger = logging.getLogger(__name__)


def _model_path() -> Path:
    repo_root = get_repo_root()
    raw = os.getenv("MODEL_PATH")
    if raw is None or str(raw).strip() == "":
        return ProjectPaths.from_repo_root(repo_root).default_model_path
    return resolve_path(repo_root, raw)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    model_path = _model_path()
    app.state.model_path = model_path
    app.state.reconstructor = None
    try:
        app.state.reconstructor = Reconstructor(load_factors(model_path))
        logger.info("Serving predictions from %s", model_path)
    except RatingPipelineError as exc:
        # Endpoints answer 503 until a loadable model is present.
        logger.error("Could not load model %s: %s", model_path, exc)
    yield


app = FastAPI(title="Low-rank Rating Prediction Service", lifespan=lifespan)


def _reconstructor(app_: FastAPI) -> Reconstructor:
    rec = getattr(app_.state, "reconstructor", None)
    if rec is None:
        raise HTTPException(status_code=503, detail="Model not loaded")
    return rec


@app.get("/health", response_model=ModelInfo)
def health() -> dict:
    rec = _reconstructor(app)
    return {
        "status": "ok",
        "num_users": rec.num_users,
        "num_items": rec.num_items,
        "rank": rec.rank,
        "model_path": str(app.state.model_path),
    }


@app.post("/predict", response_model=CellPredictResponse)
def predict_cells(req: CellPredictRequest) -> dict:
    """Score paired (user, item) positions."""
    rec = _reconstructor(app)
    if len(req.user_indices) != len(req.item_indices):
        raise HTTPException(status_code=400, detail="user_indices and item_indices must have equal length")
    try:
        scores = rec.predict_cells(req.user_indices, req.item_indices)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    results = [
        CellPrediction(user_index=int(u), item_index=int(i), predicted_rating=float(s))
        for u, i, s in zip(req.user_indices, req.item_indices, scores.tolist())
    ]
    return {"results": results}


@app.post("/predict/user", response_model=UserPredictResponse)
def predict_user(req: UserPredictRequest) -> dict:
    """Return one user's prediction row without materializing the full grid."""
    rec = _reconstructor(app)
    try:
        row = rec.predict_row(int(req.user_index))
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    if req.top is not None:
        row = row[: int(req.top)]
    return {"user_index": int(req.user_index), "predicted_ratings": [float(x) for x in row.tolist()]}
