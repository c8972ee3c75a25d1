"""
Model API Routes.

Endpoints for the inference service's models.
"""

from fastapi import APIRouter, Depends
import logging

from flowrunner.api.dependencies import get_inference_client
from flowrunner.api.schemas import ErrorResponse, ModelListResponse
from flowrunner.inference.base import InferenceClient


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/models", tags=["Models"])


@router.get(
    "",
    response_model=ModelListResponse,
    responses={502: {"model": ErrorResponse, "description": "Inference service unreachable"}},
)
async def list_models(client: InferenceClient = Depends(get_inference_client)) -> ModelListResponse:
    """List the models available on the inference service."""
    models = await client.list_models()
    return ModelListResponse(models=models, total=len(models))
