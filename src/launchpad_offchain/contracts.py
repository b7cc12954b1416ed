"""
Contract Management

Resolves compiled script exports into script artifacts with their canonical
hashes, applies constructor parameters to parametric scripts and loads the
applied scripts of a launch from an artifacts directory.
"""

import hashlib
import json
import logging
import pathlib
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import cbor2
import pycardano as pc
import uplc
import uplc.ast

from .enums import PlutusScriptVersion
from .errors import InvalidVersionError, MalformedPayloadError, NotFoundError

logger = logging.getLogger(__name__)

SCRIPT_HASH_LENGTH = 28

ScriptParam = Union[pc.PlutusData, int, bytes]


def script_hash(raw_bytes: bytes, version: PlutusScriptVersion) -> bytes:
    """blake2b-224 of the version prefix followed by the script bytes"""
    return hashlib.blake2b(version.prefix + raw_bytes, digest_size=SCRIPT_HASH_LENGTH).digest()


@dataclass(frozen=True)
class ScriptExport:
    """
    Compiled script export in the cardano-cli text envelope format

    `cbor_hex` holds the script bytes wrapped in one extra CBOR byte string.
    """

    type: str
    cbor_hex: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ScriptExport":
        try:
            return cls(type=data["type"], cbor_hex=data["cborHex"], description=data.get("description", ""))
        except (KeyError, TypeError) as e:
            raise MalformedPayloadError(f"Not a script export: missing {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, pathlib.Path]) -> "ScriptExport":
        path = pathlib.Path(path)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedPayloadError(f"Script export {path.name} is not valid JSON") from e
        return cls.from_dict(data)

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.type, self.cbor_hex.lower())


@dataclass(frozen=True)
class ScriptArtifact:
    """
    Compiled script ready to be referenced on chain

    The hash is derived from the bytes once, on construction.
    """

    raw_bytes: bytes
    version: PlutusScriptVersion
    hash: bytes = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "hash", script_hash(self.raw_bytes, self.version))

    @property
    def hash_hex(self) -> str:
        return self.hash.hex()

    @property
    def script_hash(self) -> pc.ScriptHash:
        return pc.ScriptHash(self.hash)

    def to_plutus_script(self) -> Union[pc.PlutusV1Script, pc.PlutusV2Script, pc.PlutusV3Script]:
        """Convert to the pycardano script type of the artifact's version"""
        if self.version is PlutusScriptVersion.V1:
            return pc.PlutusV1Script(self.raw_bytes)
        if self.version is PlutusScriptVersion.V2:
            return pc.PlutusV2Script(self.raw_bytes)
        return pc.PlutusV3Script(self.raw_bytes)

    def address(self, network: pc.Network) -> pc.Address:
        """Enterprise address of the script as a spending validator"""
        return pc.Address(payment_part=self.script_hash, network=network)


def _param_cbor(param: ScriptParam) -> bytes:
    if isinstance(param, pc.PlutusData):
        return param.to_cbor()
    if isinstance(param, (int, bytes)):
        return cbor2.dumps(param)
    raise MalformedPayloadError(f"Unsupported script parameter type: {type(param).__name__}")


class ScriptArtifactResolver:
    """
    Turns script exports into script artifacts

    Resolution is pure, so results are cached by export identity and shared
    across builds. The cache only ever grows with immutable values.
    """

    def __init__(self):
        self._resolved: Dict[Tuple[str, str], ScriptArtifact] = {}
        self._applied: Dict[Tuple[Tuple[str, str], Tuple[bytes, ...]], ScriptArtifact] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _version(export: ScriptExport) -> PlutusScriptVersion:
        try:
            return PlutusScriptVersion(export.type)
        except ValueError as e:
            raise InvalidVersionError(f"Unknown Plutus script version: {export.type!r}") from e

    @staticmethod
    def _unwrap(export: ScriptExport) -> bytes:
        """Strip the outer CBOR byte string of the export"""
        try:
            payload = cbor2.loads(bytes.fromhex(export.cbor_hex))
        except (ValueError, cbor2.CBORDecodeError) as e:
            raise MalformedPayloadError(f"Script export payload is not CBOR: {e}") from e
        if not isinstance(payload, bytes):
            raise MalformedPayloadError(f"Script export payload is {type(payload).__name__}, expected bytes")
        return payload

    def resolve(self, export: ScriptExport) -> ScriptArtifact:
        """
        Resolve an export to its script artifact

        Args:
            export: Compiled script export

        Returns:
            Script artifact with its canonical hash

        Raises:
            InvalidVersionError: If the export's type is not a known Plutus version
            MalformedPayloadError: If the payload does not decode to script bytes
        """
        key = export.identity
        with self._lock:
            cached = self._resolved.get(key)
        if cached is not None:
            return cached

        artifact = ScriptArtifact(raw_bytes=self._unwrap(export), version=self._version(export))
        with self._lock:
            self._resolved.setdefault(key, artifact)
        return artifact

    def apply_params(self, export: ScriptExport, params: Sequence[ScriptParam]) -> ScriptArtifact:
        """
        Apply constructor parameters to a parametric script

        Every parameter is applied as a Plutus data constant, in order. The
        resulting script is hashed after application.

        Raises:
            InvalidVersionError: If the export's type is not a known Plutus version
            MalformedPayloadError: If the script is not a valid UPLC program
        """
        base = self.resolve(export)
        params_cbor = tuple(_param_cbor(p) for p in params)
        key = (export.identity, params_cbor)
        with self._lock:
            cached = self._applied.get(key)
        if cached is not None:
            return cached

        try:
            program = uplc.unflatten(base.raw_bytes)
        except Exception as e:
            raise MalformedPayloadError(f"Script is not a flat encoded UPLC program: {e}") from e

        term = program.term
        for param_cbor in params_cbor:
            term = uplc.ast.Apply(term, uplc.ast.data_from_cbor(param_cbor))
        applied_bytes = uplc.flatten(uplc.ast.Program(program.version, term))

        artifact = ScriptArtifact(raw_bytes=applied_bytes, version=base.version)
        logger.debug(f"Applied {len(params_cbor)} parameter(s), script hash {artifact.hash_hex}")
        with self._lock:
            self._applied.setdefault(key, artifact)
        return artifact


class ContractRegistry:
    """
    Script exports of a deployment, stored as `<name>.json` / `<name>.plutus`
    text envelopes in one directory
    """

    EXPORT_SUFFIXES = (".json", ".plutus")

    def __init__(self, artifacts_dir: Union[str, pathlib.Path], resolver: Optional[ScriptArtifactResolver] = None):
        """
        Initialize contract registry

        Args:
            artifacts_dir: Directory holding the script exports
            resolver: Shared resolver, a new one is created if omitted
        """
        self.artifacts_dir = pathlib.Path(artifacts_dir)
        self.resolver = resolver or ScriptArtifactResolver()
        self._exports: Dict[str, ScriptExport] = {}

    def _export_path(self, name: str) -> Optional[pathlib.Path]:
        for suffix in self.EXPORT_SUFFIXES:
            path = self.artifacts_dir / f"{name}{suffix}"
            if path.exists():
                return path
        return None

    def names(self) -> List[str]:
        """Names of all exports in the artifacts directory"""
        if not self.artifacts_dir.is_dir():
            return []
        return sorted(p.stem for p in self.artifacts_dir.iterdir() if p.suffix in self.EXPORT_SUFFIXES)

    def export(self, name: str) -> ScriptExport:
        """
        Load a script export by name

        Raises:
            NotFoundError: If no export with that name exists
        """
        if name not in self._exports:
            path = self._export_path(name)
            if path is None:
                raise NotFoundError(f"Script export '{name}' not found in {self.artifacts_dir}")
            self._exports[name] = ScriptExport.from_file(path)
            logger.debug(f"Loaded script export '{name}' from {path}")
        return self._exports[name]

    def artifact(self, name: str) -> ScriptArtifact:
        return self.resolver.resolve(self.export(name))

    def apply(self, name: str, params: Iterable[ScriptParam]) -> ScriptArtifact:
        return self.resolver.apply_params(self.export(name), list(params))
