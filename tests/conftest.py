import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from selfcheck.config import Settings
from selfcheck.models import ReviewOutcome, ReviewRequest, TaskSnapshot

# Anvil's first default account
SIGNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SIGNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
CONTRACT_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
CLAIMANT = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
OTHER_CLAIMANT = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"


class StubTaskFetcher:
    def __init__(self, task: Optional[TaskSnapshot] = None, error: Optional[Exception] = None) -> None:
        self.task = task or TaskSnapshot(allow_self_check=True, description="Open a pull request", config="{}")
        self.error = error
        self.calls: List[tuple] = []

    async def fetch_task(self, chain, contract_address: str, board_id: int, task_id: int) -> TaskSnapshot:
        self.calls.append((chain.name, contract_address, board_id, task_id))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.task


class StubEvaluator:
    def __init__(self, approved: bool = True, comment: str = "Verified PR #12 merged into main", delay: float = 0) -> None:
        self.outcome = ReviewOutcome(approved=approved, result_payload=comment)
        self.delay = delay
        self.requests: List[ReviewRequest] = []

    async def evaluate(self, request: ReviewRequest) -> ReviewOutcome:
        self.requests.append(request)
        await asyncio.sleep(self.delay)
        return self.outcome


@pytest.fixture
def contract_file(tmp_path: Path) -> Path:
    path = tmp_path / "contract-address.json"
    path.write_text(json.dumps({"BountyBoard": {"Anvil": CONTRACT_ADDRESS}}))
    return path


@pytest.fixture
def settings(contract_file: Path) -> Settings:
    return Settings(signer_private_key=SIGNER_KEY, contract_addresses_file=str(contract_file))
