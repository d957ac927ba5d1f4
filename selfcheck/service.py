"""Self-check flow: validate, resolve chain, load task, optionally review, sign.

Each step either hands its result to the next one or raises; nothing is
retried and nothing is signed once a step has failed.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from selfcheck.chain_client import TaskFetcher
from selfcheck.chains import ChainRegistry
from selfcheck.errors import (
    InvalidProof,
    InvalidSignerConfiguration,
    ReviewRejected,
    ReviewTimeout,
    SelfCheckNotAllowed,
)
from selfcheck.models import Attestation, ReviewRequest, SelfCheckRequest, TaskSnapshot
from selfcheck.review import ReviewEvaluator
from selfcheck.signer import AttestationSigner

logger = logging.getLogger(__name__)


class SelfCheckService:
    def __init__(
        self,
        registry: ChainRegistry,
        task_fetcher: TaskFetcher,
        evaluator: ReviewEvaluator,
        signer: Optional[AttestationSigner],
        signer_error: Optional[InvalidSignerConfiguration] = None,
        review_timeout: float = 60.0,
    ):
        if signer is None and signer_error is None:
            signer_error = InvalidSignerConfiguration("No attestation signer configured")
        self._registry = registry
        self._task_fetcher = task_fetcher
        self._evaluator = evaluator
        self._signer = signer
        self._signer_error = signer_error
        self._review_timeout = review_timeout

    @property
    def signer(self) -> Optional[AttestationSigner]:
        return self._signer

    def require_signer(self) -> AttestationSigner:
        if self._signer is None:
            raise self._signer_error
        return self._signer

    async def attest(self, payload: Any) -> Attestation:
        signer = self.require_signer()

        request = SelfCheckRequest.from_payload(payload)
        context = {"board_id": request.board_id, "task_id": request.task_id, "chain": request.chain_name}
        logger.info("Self-check requested", extra={**context, "claimant": request.address})

        chain = self._registry.resolve(request.chain_name)
        contract_address = self._registry.contract_address(chain)

        task = await self._task_fetcher.fetch_task(chain, contract_address, request.board_id, request.task_id)
        if not task.allow_self_check:
            logger.info("Self-check refused by task settings", extra=context)
            raise SelfCheckNotAllowed()

        check_data = await self._check_data(request, task, context)
        return signer.sign(request.board_id, request.task_id, request.address, check_data)

    async def _check_data(self, request: SelfCheckRequest, task: TaskSnapshot, context: dict) -> str:
        """The string to sign: raw proof, or the reviewer's summary when the task asks for AI review."""
        config = task.task_config()
        if not config.ai_review:
            return request.proof

        try:
            proof_data = json.loads(request.proof)
        except json.JSONDecodeError as exc:
            raise InvalidProof("Proof must be valid JSON for tasks with AI review") from exc

        review_request = ReviewRequest(
            task_config=config.raw,
            proof_types=config.task_type,
            proof_data=proof_data,
            task_description=task.description,
            review_prompt=config.ai_review_prompt,
        )
        try:
            outcome = await asyncio.wait_for(self._evaluator.evaluate(review_request), timeout=self._review_timeout)
        except asyncio.TimeoutError as exc:
            raise ReviewTimeout(f"AI review did not finish within {self._review_timeout}s") from exc

        if not outcome.approved:
            logger.info("AI review rejected proof", extra=context)
            raise ReviewRejected(outcome.result_payload)
        return outcome.result_payload
