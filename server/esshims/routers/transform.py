from fastapi import APIRouter, HTTPException
from pathlib import Path

from esshims.models import TransformRequest, TransformResponse
from esshims.services.provider import PolyfillProvider
from esshims.services.transform import transform_source

router = APIRouter(prefix="/api/transform", tags=["transform"])

# TODO: read the default root from an ESSHIMS_ROOT env var
ROOT_PATH = Path.cwd()

@router.post("", response_model=TransformResponse)
async def transform(request: TransformRequest):
    """
    Inject polyfills into a single source string.

    Missing dependencies are looked up from `root` (or the server's working
    directory) and are also reported through the regular missing-dependency
    warning, per request or debounced across requests depending on
    `options.missingDependencies.log`.
    """
    root = Path(request.root) if request.root else ROOT_PATH
    if not root.exists():
        raise HTTPException(status_code=404, detail="Root path not found")

    try:
        provider = PolyfillProvider(root, options=request.options)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    result = transform_source(request.code, request.filename, provider)
    return TransformResponse(
        code=result.code,
        polyfills=result.polyfills,
        missing_dependencies=result.missing_dependencies,
    )
