import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import get_settings
from .utils.analysis import AnalysisOrchestrator
from .utils.catalog import ModelCatalog
from .utils.media import AudioExtractor
from .utils.models import AnalysisFailure
from .utils.parsing import ReportNormalizer
from .utils.providers import ProviderRegistry, build_providers

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Voice Coach API",
    description="Analyze recorded clips and return a structured coaching report.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    # Browsers reject credentials with a wildcard origin
    allow_credentials="*" not in settings.cors_allow_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Provider clients are built once per process and handed to the core
@lru_cache()
def get_providers() -> ProviderRegistry:
    return build_providers(get_settings())


def get_orchestrator(providers: ProviderRegistry = Depends(get_providers)) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        providers,
        normalizer=ReportNormalizer(providers),
        extractor=AudioExtractor(get_settings().ffmpeg_bin),
    )


def get_catalog(providers: ProviderRegistry = Depends(get_providers)) -> ModelCatalog:
    return ModelCatalog(providers)


@app.get("/")
def read_root():
    return {"Hello": "Voice Coach AI"}


@app.get("/models")
def list_models(catalog: ModelCatalog = Depends(get_catalog)):
    """List selectable models from every provider, tolerating provider failures."""
    listing = catalog.list_models()
    return listing.model_dump(mode="json", exclude_none=True)


@app.post("/analyze")
async def analyze(
    file: Optional[UploadFile] = File(None),
    provider: str = Form("gemini"),
    model: str = Form(""),
    prompt: str = Form(""),
    mediaType: str = Form("video"),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Analyze a recorded clip and return the coaching report with the raw analysis."""
    content = await file.read() if file is not None else None
    result = await run_in_threadpool(
        orchestrator.run,
        content,
        provider=provider,
        model=model,
        prompt=prompt,
        media_type=mediaType,
        filename=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
    )

    if isinstance(result, AnalysisFailure):
        return JSONResponse(status_code=result.status_code, content=result.model_dump())
    return result.model_dump(mode="json")
