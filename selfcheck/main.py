import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from selfcheck.chain_client import TaskFetcher, Web3TaskFetcher, load_abi
from selfcheck.chains import ChainRegistry
from selfcheck.config import Settings
from selfcheck.errors import INTERNAL_ERROR_MESSAGE, InputValidationError, InvalidSignerConfiguration, SelfCheckError
from selfcheck.models import ErrorResponse, SelfCheckResponse
from selfcheck.review import LLMReviewEvaluator, ReviewEvaluator
from selfcheck.service import SelfCheckService
from selfcheck.signer import AttestationSigner
from selfcheck.utils import setup_logging

logger = logging.getLogger(__name__)


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def _load_signer(settings: Settings):
    try:
        signer = AttestationSigner(_secret(settings.signer_private_key))
    except InvalidSignerConfiguration as exc:
        # Self-check requests answer 500 until the key is fixed
        logger.critical(f"Attestation signer unavailable: {exc}")
        return None, exc
    logger.info("Attestation signer loaded", extra={"signer_address": signer.address})
    return signer, None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def create_app(
    settings: Optional[Settings] = None,
    *,
    task_fetcher: Optional[TaskFetcher] = None,
    evaluator: Optional[ReviewEvaluator] = None,
) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.log_level, settings.log_file)

    registry = ChainRegistry.from_settings(settings)
    signer, signer_error = _load_signer(settings)
    service = SelfCheckService(
        registry=registry,
        task_fetcher=task_fetcher or Web3TaskFetcher(registry, load_abi(settings.abi_path), settings.chain_read_timeout),
        evaluator=evaluator or LLMReviewEvaluator(
            api_key=_secret(settings.ai_review_api_key),
            base_url=settings.ai_review_base_url,
            model=settings.ai_review_model,
            # All three attempts fit inside REVIEW_TIMEOUT
            request_timeout=settings.review_timeout / 3,
        ),
        signer=signer,
        signer_error=signer_error,
        review_timeout=settings.review_timeout,
    )

    app = FastAPI(title="Bounty Board Self-Check API")
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/api/self-check")
    async def self_check(request: Request):
        try:
            service.require_signer()
            try:
                payload = await request.json()
            except ValueError as exc:
                raise InputValidationError("Request body must be valid JSON") from exc
            attestation = await service.attest(payload)
        except SelfCheckError as e:
            if e.status_code >= 500:
                logger.exception("Error in self-check", extra={"error": str(e)})
            else:
                logger.warning("Self-check rejected", extra={"status": e.status_code, "error": str(e)})
            return _error(e.status_code, e.public_message)
        except Exception as e:
            logger.exception("Error in self-check", extra={"error": str(e)})
            return _error(500, INTERNAL_ERROR_MESSAGE)

        logger.info("Self-check signed", extra={"claim_hash": attestation.claim_hash_hex})
        response = SelfCheckResponse.from_attestation(attestation)
        return JSONResponse(status_code=200, content=response.model_dump(by_alias=True))

    @app.get("/api/signer")
    async def signer_info():
        if service.signer is None:
            return _error(503, "Signer not configured")
        return {"address": service.signer.address}

    @app.get("/api/chains")
    async def chains():
        return {
            "chains": [
                {"name": chain.name, "chainId": chain.chain_id, "deployed": registry.is_deployed(chain)}
                for chain in registry
            ]
        }

    @app.get("/")
    async def root():
        return {"message": "Self-check attestation service is running! POST proofs to /api/self-check."}

    return app


app = create_app()
