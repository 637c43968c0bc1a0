import json
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple

from eth_typing import ChecksumAddress

from deployment.constants import ADDRESS_FILENAME_SUFFIX, ARTIFACT_JSON_FORMAT
from deployment.utils import _load_json

ContractName = str


class DeployedContract(NamedTuple):
    """A confirmed contract instance produced by a deployment run."""

    name: ContractName
    address: ChecksumAddress
    interface: Dict[str, Any]
    tx_hash: str
    block_number: int

    @property
    def abi(self) -> List[Dict]:
        return self.interface.get("abi", [])


class ArtifactRecord(NamedTuple):
    """The pair of front-end files persisted for a single contract."""

    name: ContractName
    address: ChecksumAddress
    interface: Dict[str, Any]
    address_filepath: Path
    interface_filepath: Path


class ArtifactWriteError(OSError):
    """Raised once all artifact writes have finished and at least one of them failed."""

    def __init__(self, failures: Dict[ContractName, Exception]):
        self.failures = failures
        details = "; ".join(f"{name}: {error}" for name, error in failures.items())
        super().__init__(f"Failed to write artifacts for {len(failures)} contract(s): {details}")


def address_filepath(directory: Path, name: ContractName) -> Path:
    return directory / f"{name}{ADDRESS_FILENAME_SUFFIX}"


def interface_filepath(directory: Path, name: ContractName) -> Path:
    return directory / f"{name}.json"


def _dump_json(data: Any, filepath: Path) -> None:
    """Replaces the file as a whole; readers never observe a partial write."""
    temp_filepath = filepath.with_name(f".{filepath.name}.tmp")
    try:
        with open(temp_filepath, "w") as file:
            json.dump(data, file, **ARTIFACT_JSON_FORMAT)
        temp_filepath.replace(filepath)
    except BaseException:
        temp_filepath.unlink(missing_ok=True)
        raise


def _write_record(deployment: DeployedContract, directory: Path) -> ArtifactRecord:
    record = ArtifactRecord(
        name=deployment.name,
        address=deployment.address,
        interface=deployment.interface,
        address_filepath=address_filepath(directory, deployment.name),
        interface_filepath=interface_filepath(directory, deployment.name),
    )
    _dump_json({record.name: record.address}, record.address_filepath)
    _dump_json(record.interface, record.interface_filepath)
    print(f"Successfully deployed {record.name} at {record.address}")
    return record


def write_artifacts(
    deployments: Iterable[DeployedContract], directory: Path
) -> List[ArtifactRecord]:
    """
    Writes the address and interface files of every deployment into directory.

    Contracts are written concurrently; this returns only after every write has
    finished, and raises ArtifactWriteError naming each contract whose files
    could not be written.
    """
    deployments = list(deployments)
    if not deployments:
        print("No deployments provided.")
        return []

    # once, before any writer starts
    directory.mkdir(parents=True, exist_ok=True)

    records = OrderedDict()
    failures = OrderedDict()
    with ThreadPoolExecutor(max_workers=len(deployments)) as executor:
        futures = OrderedDict(
            (deployment.name, executor.submit(_write_record, deployment, directory))
            for deployment in deployments
        )
        for name, future in futures.items():
            try:
                records[name] = future.result()
            except (OSError, TypeError, ValueError) as e:
                failures[name] = e

    if failures:
        raise ArtifactWriteError(failures)

    print(f"(i) Artifacts written to {directory}!")
    return list(records.values())


def read_artifacts(directory: Path) -> Dict[ContractName, ArtifactRecord]:
    """Loads the artifacts the front-end would see in directory."""
    records = OrderedDict()
    for filepath in sorted(directory.glob(f"*{ADDRESS_FILENAME_SUFFIX}")):
        name = filepath.name[: -len(ADDRESS_FILENAME_SUFFIX)]
        address = _load_json(filepath)[name]
        interface_path = interface_filepath(directory, name)
        records[name] = ArtifactRecord(
            name=name,
            address=address,
            interface=_load_json(interface_path),
            address_filepath=filepath,
            interface_filepath=interface_path,
        )
    return records
