"""
Datum Codec

Strict decoding of on-chain datums into the PlutusData types of
launchpad_offchain.types, and CBOR encoding of outgoing datums and redeemers.

Decoding walks the CBOR structure against the type hints of the schema:
constructor tags, arities, primitive types and list shapes must all match,
every integer must be non-negative (amounts, counts, indexes and POSIX times)
and the schema's own `is_well_formed` check must pass.
"""

import dataclasses
import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

import cbor2
import pycardano as pc

from .enums import DecodeStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DatumInput = Union[bytes, str, pc.RawPlutusData, pc.RawCBOR, pc.PlutusData, None]


class _NoMatch(Exception):
    """Raised inside the walker when the data does not fit the schema"""


@dataclass(frozen=True)
class DecodeResult(Generic[T]):
    """Decoded value, or why there is none"""

    status: DecodeStatus
    value: Optional[T] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is DecodeStatus.OK


def _constructor(tag: cbor2.CBORTag) -> Tuple[int, Any]:
    """Constructor index and fields of a Plutus constr encoding"""
    if 121 <= tag.tag <= 127:
        return tag.tag - 121, tag.value
    if 1280 <= tag.tag <= 1400:
        return tag.tag - 1280 + 7, tag.value
    if tag.tag == 102 and isinstance(tag.value, list) and len(tag.value) == 2:
        return tag.value[0], tag.value[1]
    raise _NoMatch(f"CBOR tag {tag.tag} is not a constructor")


def _from_constr(cls: Type[pc.PlutusData], value: Any) -> pc.PlutusData:
    if not isinstance(value, cbor2.CBORTag):
        raise _NoMatch(f"{cls.__name__}: expected constructor, got {type(value).__name__}")
    index, items = _constructor(value)
    if index != cls.CONSTR_ID:
        raise _NoMatch(f"{cls.__name__}: expected constructor {cls.CONSTR_ID}, got {index}")
    if not isinstance(items, list):
        raise _NoMatch(f"{cls.__name__}: constructor fields are not a list")

    fields = dataclasses.fields(cls)
    if len(items) != len(fields):
        raise _NoMatch(f"{cls.__name__}: expected {len(fields)} fields, got {len(items)}")

    hints = get_type_hints(cls)
    decoded = cls(*(_from_data(hints[f.name], item) for f, item in zip(fields, items)))

    is_well_formed = getattr(decoded, "is_well_formed", None)
    if is_well_formed is not None and not is_well_formed():
        raise _NoMatch(f"{cls.__name__}: values out of range")
    return decoded


def _from_data(schema: Any, value: Any) -> Any:
    origin = get_origin(schema)

    if schema is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _NoMatch(f"expected integer, got {type(value).__name__}")
        if value < 0:
            raise _NoMatch(f"negative integer {value}")
        return value

    if schema is bytes:
        if not isinstance(value, bytes):
            raise _NoMatch(f"expected bytes, got {type(value).__name__}")
        return value

    if origin in (list, List):
        (item_schema,) = get_args(schema)
        if not isinstance(value, list):
            raise _NoMatch(f"expected list, got {type(value).__name__}")
        return [_from_data(item_schema, item) for item in value]

    if origin is Union:
        if not isinstance(value, cbor2.CBORTag):
            raise _NoMatch(f"expected constructor, got {type(value).__name__}")
        index, _ = _constructor(value)
        for variant in get_args(schema):
            if getattr(variant, "CONSTR_ID", None) == index:
                return _from_constr(variant, value)
        raise _NoMatch(f"no variant with constructor {index}")

    if inspect.isclass(schema) and issubclass(schema, pc.PlutusData):
        return _from_constr(schema, value)

    raise _NoMatch(f"unsupported schema {schema!r}")


def _load(datum: DatumInput) -> Any:
    """CBOR primitive of a datum in any of the forms pycardano hands out"""
    if datum is None:
        raise ValueError("no datum")
    if isinstance(datum, pc.RawCBOR):
        return cbor2.loads(datum.cbor)
    # Re-read through cbor2 so indefinite-length arrays come back as plain lists
    if isinstance(datum, (pc.PlutusData, pc.RawPlutusData)):
        return cbor2.loads(datum.to_cbor())
    if isinstance(datum, str):
        return cbor2.loads(bytes.fromhex(datum))
    if isinstance(datum, (bytes, bytearray)):
        return cbor2.loads(bytes(datum))
    raise ValueError(f"unsupported datum type {type(datum).__name__}")


def _load_output_datum(datum: Any) -> Any:
    """
    CBOR primitive of the datum attached to an output

    pycardano hands out bytestring and integer datums as plain values, so
    bytes here are data, not CBOR.
    """
    if isinstance(datum, (bytes, bytearray)):
        return bytes(datum)
    if isinstance(datum, int) and not isinstance(datum, bool):
        return datum
    return _load(datum)


def _try_decode(schema: Type[T], load: Callable[[], Any]) -> DecodeResult[T]:
    try:
        primitive = load()
    except Exception as e:
        # Semantic tag hooks in cbor2 raise whatever their constructors raise
        return DecodeResult(DecodeStatus.ERROR, reason=str(e))

    try:
        return DecodeResult(DecodeStatus.OK, value=_from_data(schema, primitive))
    except _NoMatch as e:
        return DecodeResult(DecodeStatus.NO_MATCH, reason=str(e))
    except RecursionError as e:
        return DecodeResult(DecodeStatus.ERROR, reason=str(e))


def _value_or_none(schema: Any, result: DecodeResult[T]) -> Optional[T]:
    if result.status is DecodeStatus.ERROR:
        logger.debug(f"Could not decode datum as {getattr(schema, '__name__', schema)}: {result.reason}")
    return result.value


def try_decode(schema: Type[T], datum: DatumInput) -> DecodeResult[T]:
    """
    Decode a datum, telling apart data of another shape from broken input

    Args:
        schema: PlutusData class, Union of PlutusData classes, `bytes` or `int`
        datum: CBOR bytes or hex, or a pycardano datum

    Returns:
        DecodeResult with status OK, NO_MATCH or ERROR
    """
    return _try_decode(schema, lambda: _load(datum))


def decode(schema: Type[T], datum: DatumInput) -> Optional[T]:
    """
    Decode a datum, returning None when it does not match the schema

    Never raises: malformed CBOR, structural mismatches and out-of-range
    values all yield None. Use try_decode to tell them apart.
    """
    return _value_or_none(schema, try_decode(schema, datum))


def try_decode_utxo(schema: Type[T], utxo: pc.UTxO) -> DecodeResult[T]:
    return _try_decode(schema, lambda: _load_output_datum(utxo.output.datum))


def decode_utxo(schema: Type[T], utxo: pc.UTxO) -> Optional[T]:
    """Decode the inline datum of a UTxO, None when it does not match the schema"""
    return _value_or_none(schema, try_decode_utxo(schema, utxo))


def encode_datum(value: Union[pc.PlutusData, bytes, int]) -> bytes:
    """On-chain CBOR of an outgoing datum or redeemer"""
    if isinstance(value, pc.PlutusData):
        return value.to_cbor()
    if isinstance(value, (bytes, int)) and not isinstance(value, bool):
        return cbor2.dumps(value)
    raise TypeError(f"Cannot encode {type(value).__name__} as Plutus data")
