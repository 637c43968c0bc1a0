import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from deployment.constants import BUILD_DIR, FRONTEND_CONTRACTS_DIR, PROJECT_ROOT


class ArtifactNotFound(ValueError):
    """Raised when no compiled artifact exists for a contract name."""


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def _project_path(value) -> Path:
    """Relative paths in a params file are relative to the project root."""
    path = Path(value)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


def get_output_dir(config: Dict) -> Path:
    """Returns the directory deployment artifacts are written to."""
    artifact_config = config.get("artifacts") or {}
    return _project_path(artifact_config.get("dir", FRONTEND_CONTRACTS_DIR))


def get_build_dir(config: Dict) -> Path:
    """Returns the directory holding the compiled contract artifacts."""
    artifact_config = config.get("artifacts") or {}
    return _project_path(artifact_config.get("build_dir", BUILD_DIR))


def validate_config(config: Dict, chain_id: int, local: bool) -> None:
    """
    Checks the params file has the required sections and that it
    targets the chain we are connected to.
    """
    print("Validating parameters YAML...")

    deployment = config.get("deployment")
    if not deployment:
        raise ValueError("deployment is not set in params file.")

    config_chain_id = deployment.get("chain_id")
    if not config_chain_id:
        raise ValueError("chain_id is not set in params file.")

    contracts = config.get("contracts")
    if not contracts:
        raise ValueError("Constructor parameters file missing 'contracts' field.")

    chain_mismatch = int(config_chain_id) != chain_id
    if chain_mismatch and not local:
        raise ValueError(
            f"chain_id in params file ({config_chain_id}) does not match "
            f"chain_id of current network ({chain_id})."
        )


class ArtifactStore:
    """
    Read-only view over the compiled contract artifacts produced by the build pipeline.

    Artifacts are looked up by contract name anywhere below the build directory, so both
    the hardhat layout (<Source>.sol/<Name>.json) and a flat directory of <Name>.json files work.
    """

    DEBUG_SUFFIX = ".dbg.json"

    def __init__(self, build_dir: Path):
        self.build_dir = Path(build_dir)
        self._cache = dict()

    def _find(self, contract_name: str) -> Path:
        candidates = [
            path
            for path in self.build_dir.rglob(f"{contract_name}.json")
            if not path.name.endswith(self.DEBUG_SUFFIX)
        ]
        if not candidates:
            raise ArtifactNotFound(
                f"No compiled artifact found for '{contract_name}' in {self.build_dir}."
            )
        if len(candidates) > 1:
            raise ValueError(
                f"Artifact for '{contract_name}' is ambiguous - "
                f"found {len(candidates)} candidates in {self.build_dir}"
            )
        return candidates[0]

    def get(self, contract_name: str) -> Dict[str, Any]:
        """Returns the full compiled interface of a contract."""
        if contract_name not in self._cache:
            self._cache[contract_name] = _load_json(self._find(contract_name))
        return self._cache[contract_name]

    def abi(self, contract_name: str) -> List[Dict]:
        interface = self.get(contract_name)
        try:
            return interface["abi"]
        except KeyError:
            raise ArtifactNotFound(f"Artifact for '{contract_name}' has no ABI.")

    def bytecode(self, contract_name: str) -> str:
        bytecode = get_bytecode(self.get(contract_name))
        if not bytecode:
            raise ArtifactNotFound(f"Artifact for '{contract_name}' has no creation bytecode.")
        return bytecode

    def constructor_inputs(self, contract_name: str) -> List[Dict]:
        for entry in self.abi(contract_name):
            if entry.get("type") == "constructor":
                return entry.get("inputs", [])
        return []  # implicit constructor


def get_bytecode(interface: Dict[str, Any]) -> Optional[str]:
    """Returns the creation bytecode of a hardhat- or ethpm-style artifact."""
    bytecode = interface.get("bytecode")
    if isinstance(bytecode, dict):
        # solc standard json output
        bytecode = bytecode.get("object")
    if bytecode is None and "deploymentBytecode" in interface:
        bytecode = interface["deploymentBytecode"].get("bytecode")
    return bytecode
