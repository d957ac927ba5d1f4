import asyncio
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from web3 import AsyncWeb3

from selfcheck.chains import Chain
from selfcheck.errors import ChainReadError
from selfcheck.models import TaskSnapshot

logger = logging.getLogger(__name__)

DEFAULT_ABI_PATH = Path(__file__).parent / "abi" / "BountyBoard.json"
TASK_DETAIL_FUNCTION = "getTaskDetail"
REQUIRED_TASK_FIELDS = ("allowSelfCheck", "description", "config")


class TaskFetcher(Protocol):
    async def fetch_task(self, chain: Chain, contract_address: str, board_id: int, task_id: int) -> TaskSnapshot:
        ...


def load_abi(path: Optional[str] = None) -> List[dict]:
    abi_path = Path(path) if path else DEFAULT_ABI_PATH
    with abi_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    # Hardhat and Foundry artifacts wrap the ABI in an object
    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise ValueError(f"{abi_path} does not contain a contract ABI")
    return data


def task_detail_fields(abi: List[dict]) -> List[str]:
    """Names of the values getTaskDetail returns, in ABI order."""
    for entry in abi:
        if entry.get("type") != "function" or entry.get("name") != TASK_DETAIL_FUNCTION:
            continue
        outputs = entry.get("outputs") or []
        if len(outputs) == 1 and outputs[0].get("type") == "tuple":
            outputs = outputs[0].get("components") or []
        names = [output.get("name") for output in outputs]
        missing = [field for field in REQUIRED_TASK_FIELDS if field not in names]
        if missing:
            raise ValueError(f"{TASK_DETAIL_FUNCTION} result lacks fields: {', '.join(missing)}")
        return names
    raise ValueError(f"ABI does not declare {TASK_DETAIL_FUNCTION}")


def snapshot_from_result(fields: List[str], result: Any) -> TaskSnapshot:
    if isinstance(result, Mapping):
        values = dict(result)
    else:
        values = list(result)
        if len(values) == 1 and len(fields) > 1:
            values = list(values[0])
        if len(values) != len(fields):
            raise ValueError(f"expected {len(fields)} task fields, got {len(values)}")
        values = dict(zip(fields, values))
    return TaskSnapshot(
        allow_self_check=bool(values["allowSelfCheck"]),
        description=values.get("description") or "",
        config=values.get("config") or "",
    )


class Web3TaskFetcher:
    """Calls getTaskDetail over JSON-RPC, one AsyncWeb3 client per configured chain."""

    def __init__(self, chains: Iterable[Chain], abi: List[dict], timeout: float):
        self._abi = abi
        self._fields = task_detail_fields(abi)
        self._timeout = timeout
        self._clients = MappingProxyType(
            {chain.name: AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(chain.rpc_url)) for chain in chains}
        )

    async def fetch_task(self, chain: Chain, contract_address: str, board_id: int, task_id: int) -> TaskSnapshot:
        try:
            result = await asyncio.wait_for(
                self._call(chain, contract_address, board_id, task_id), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise ChainReadError(f"{TASK_DETAIL_FUNCTION} timed out after {self._timeout}s on {chain.name}") from exc
        except ChainReadError:
            raise
        except Exception as exc:
            raise ChainReadError(f"{TASK_DETAIL_FUNCTION} failed on {chain.name}: {exc}") from exc

        try:
            return snapshot_from_result(self._fields, result)
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainReadError(f"Unexpected {TASK_DETAIL_FUNCTION} result on {chain.name}: {exc}") from exc

    async def _call(self, chain: Chain, contract_address: str, board_id: int, task_id: int) -> Any:
        client = self._clients.get(chain.name)
        if client is None:
            raise ChainReadError(f"No RPC client configured for {chain.name}")
        contract = client.eth.contract(address=contract_address, abi=self._abi)
        logger.debug(
            "Reading task detail",
            extra={"chain": chain.name, "contract": contract_address, "board_id": board_id, "task_id": task_id},
        )
        return await contract.functions.getTaskDetail(board_id, task_id).call()
