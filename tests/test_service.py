import asyncio
import json

import pytest

from selfcheck.chains import ANVIL, ChainRegistry
from selfcheck.errors import (
    ChainReadError,
    InputValidationError,
    InvalidProof,
    InvalidSignerConfiguration,
    ReviewRejected,
    ReviewTimeout,
    SelfCheckNotAllowed,
    TaskConfigError,
)
from selfcheck.models import TaskSnapshot
from selfcheck.service import SelfCheckService
from selfcheck.signer import AttestationSigner, claim_hash

from conftest import CLAIMANT, CONTRACT_ADDRESS, OTHER_CLAIMANT, SIGNER_KEY, StubEvaluator, StubTaskFetcher

PROOF = '{"url": "https://github.com/org/repo/pull/12", "note": "héllo  "}'


class CountingSigner(AttestationSigner):
    def __init__(self, private_key):
        super().__init__(private_key)
        self.calls = 0

    def sign(self, *args, **kwargs):
        self.calls += 1
        return super().sign(*args, **kwargs)


def _service(task=None, fetch_error=None, evaluator=None, signer="default", review_timeout=1.0):
    fetcher = StubTaskFetcher(task=task, error=fetch_error)
    service = SelfCheckService(
        registry=ChainRegistry({ANVIL.name: ANVIL}, {ANVIL.name: CONTRACT_ADDRESS}),
        task_fetcher=fetcher,
        evaluator=evaluator or StubEvaluator(),
        signer=CountingSigner(SIGNER_KEY) if signer == "default" else signer,
        review_timeout=review_timeout,
    )
    return service, fetcher


def _payload(**overrides):
    payload = {"boardId": 3, "taskId": "4", "address": CLAIMANT, "proof": PROOF, "chainName": "Anvil"}
    payload.update(overrides)
    return payload


def _task(config: str = "{}", allow: bool = True) -> TaskSnapshot:
    return TaskSnapshot(allow_self_check=allow, description="Fix the flaky login test", config=config)


def test_without_review_the_raw_proof_is_signed():
    service, fetcher = _service(task=_task('{"taskType": ["Github Pr"]}'))
    attestation = asyncio.run(service.attest(_payload()))

    assert attestation.result_payload == PROOF
    assert attestation.claim_hash == claim_hash(3, 4, CLAIMANT, PROOF)
    assert fetcher.calls == [("Anvil", "0x5FbDB2315678afecb367f032d93F642f64180aa3", 3, 4)]


def test_disallowed_task_is_refused_before_signing():
    evaluator = StubEvaluator()
    service, _ = _service(task=_task('{"aiReview": true}', allow=False), evaluator=evaluator)

    with pytest.raises(SelfCheckNotAllowed):
        asyncio.run(service.attest(_payload()))
    assert service.signer.calls == 0
    assert evaluator.requests == []


def test_approved_review_signs_the_review_summary():
    evaluator = StubEvaluator(approved=True, comment="PR #12 merged into main")
    config = '{"aiReview": true, "taskType": ["Github Pr"], "aiReviewPrompt": "Must be merged", "extra": 1}'
    service, _ = _service(task=_task(config), evaluator=evaluator)

    attestation = asyncio.run(service.attest(_payload()))

    assert attestation.result_payload == "PR #12 merged into main"
    assert attestation.claim_hash == claim_hash(3, 4, CLAIMANT, "PR #12 merged into main")
    (request,) = evaluator.requests
    assert request.proof_data == json.loads(PROOF)
    assert request.proof_types == ["Github Pr"]
    assert request.review_prompt == "Must be merged"
    assert request.task_description == "Fix the flaky login test"
    assert request.task_config["extra"] == 1


@pytest.mark.parametrize("flag", ["[]", "{}", '"false"', '"0"', '"no"'])
def test_non_empty_review_flags_still_run_the_review(flag):
    evaluator = StubEvaluator(approved=True, comment="Checked")
    service, _ = _service(task=_task('{"aiReview": %s}' % flag), evaluator=evaluator)

    attestation = asyncio.run(service.attest(_payload()))

    assert len(evaluator.requests) == 1
    assert attestation.result_payload == "Checked"


def test_rejected_review_surfaces_comment_and_signs_nothing():
    evaluator = StubEvaluator(approved=False, comment="The PR is still open")
    service, _ = _service(task=_task('{"aiReview": true}'), evaluator=evaluator)

    with pytest.raises(ReviewRejected) as excinfo:
        asyncio.run(service.attest(_payload()))
    assert excinfo.value.public_message == "The PR is still open"
    assert excinfo.value.status_code == 400
    assert service.signer.calls == 0


def test_non_json_proof_with_review_is_invalid_proof():
    service, _ = _service(task=_task('{"aiReview": true}'))
    with pytest.raises(InvalidProof) as excinfo:
        asyncio.run(service.attest(_payload(proof="just some words")))
    assert excinfo.value.status_code == 400


def test_non_json_proof_without_review_is_fine():
    service, _ = _service()
    attestation = asyncio.run(service.attest(_payload(proof="just some words")))
    assert attestation.result_payload == "just some words"


def test_slow_review_times_out():
    service, _ = _service(task=_task('{"aiReview": true}'), evaluator=StubEvaluator(delay=1.0), review_timeout=0.01)
    with pytest.raises(ReviewTimeout):
        asyncio.run(service.attest(_payload()))
    assert service.signer.calls == 0


def test_chain_errors_propagate_unretried():
    service, fetcher = _service(fetch_error=ChainReadError("rpc down"))
    with pytest.raises(ChainReadError):
        asyncio.run(service.attest(_payload()))
    assert len(fetcher.calls) == 1


def test_broken_task_config_is_not_signed():
    service, _ = _service(task=_task("{aiReview: true"))
    with pytest.raises(TaskConfigError):
        asyncio.run(service.attest(_payload()))
    assert service.signer.calls == 0


def test_missing_signer_fails_before_validation():
    service, fetcher = _service(signer=None)
    with pytest.raises(InvalidSignerConfiguration):
        asyncio.run(service.attest({}))
    assert fetcher.calls == []


def test_validation_happens_before_chain_access():
    service, fetcher = _service()
    with pytest.raises(InputValidationError):
        asyncio.run(service.attest(_payload(address=None)))
    assert fetcher.calls == []


def test_claims_differ_per_claimant():
    service, _ = _service()
    first = asyncio.run(service.attest(_payload()))
    second = asyncio.run(service.attest(_payload(address=OTHER_CLAIMANT)))
    assert first.claim_hash != second.claim_hash
    assert first.result_payload == second.result_payload


def test_concurrent_requests_are_independent():
    service, _ = _service()

    async def run_all():
        return await asyncio.gather(*(service.attest(_payload(taskId=i)) for i in range(5)))

    attestations = asyncio.run(run_all())
    assert [a.claim_hash for a in attestations] == [claim_hash(3, i, CLAIMANT, PROOF) for i in range(5)]
