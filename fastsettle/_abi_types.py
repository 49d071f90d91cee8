import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from functools import cached_property
from typing import Any, cast

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak

from ._entities import Address

ABI_JSON = None | bool | int | float | str | Sequence["ABI_JSON"] | Mapping[str, "ABI_JSON"]
"""Values serializable to JSON."""


class ABIDecodingError(Exception):
    """Raised on an error when decoding a value in an Eth ABI encoded bytestring."""


class ABISchemaError(ValueError):
    """Raised when a JSON ABI entry is malformed or describes an unsupported construct."""


def _decode_abi(types: Sequence[str], data: bytes) -> tuple[Any, ...]:
    try:
        return decode(types, data)
    except DecodingError as exc:
        # wrap possible `eth_abi` errors
        signature = "(" + ",".join(types) + ")"
        message = (
            f"Could not decode the value with the expected signature {signature}: {exc}"
        )
        raise ABIDecodingError(message) from exc


class Type(ABC):
    """The base type for Solidity types."""

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """Returns the type as a string in the canonical form (for ``eth_abi`` consumption)."""

    @abstractmethod
    def _normalize(self, val: Any) -> Any:
        """
        Checks and possibly normalizes the value making it ready to be passed
        to ``encode()`` for encoding.
        """

    @abstractmethod
    def _denormalize(self, val: Any) -> Any:
        """
        Checks the result of ``decode()``
        and wraps it in a specific type, if applicable.
        """

    def encode(self, val: Any) -> bytes:
        """Encodes the given value in the contract ABI format."""
        return self._encode_normalized(self._normalize(val))

    def _encode_normalized(self, val: Any) -> bytes:
        try:
            return encode([self.canonical_form], [val])
        except EncodingError as exc:
            raise ValueError(f"Could not encode {val!r} as `{self.canonical_form}`: {exc}") from exc

    def decode(self, val: bytes) -> Any:
        """Decodes the given value from the contract ABI format."""
        return self._denormalize(_decode_abi([self.canonical_form], val)[0])

    def encode_to_topic(self, val: Any) -> bytes:
        """Encodes the given value as an event topic."""
        # EVM uses a simpler encoding scheme for encoding values into event topics
        # because objects of reference types are just hashed,
        # and there is no need to unpack them later
        # (basically, all values are just concatenated without any length labels).
        # Therefore we have to provide these methods
        # and cannot just use the functions from ``eth_abi``.

        # Before doing anything, normalize the value,
        # this will ensure the constituent values are actually valid.
        return self._encode_to_topic_outer(self._normalize(val))

    def _encode_to_topic_outer(self, val: Any) -> bytes:
        """Encodes a value of the outer indexed type."""
        # By default it's just the encoding of the value type.
        return self._encode_normalized(val)

    def _encode_to_topic_inner(self, val: Any) -> bytes:
        """Encodes a value contained within an indexed array or struct."""
        # By default it's just the encoding of the value type.
        return self._encode_normalized(val)

    def decode_from_topic(self, val: bytes) -> Any:
        """
        Decodes an encoded topic.
        Returns ``None`` if the decoding is impossible
        (that is, the original value was hashed).
        """
        # All reference types are hashed, so there is no inner/outer division here.
        return self.decode(val)

    def __str__(self) -> str:
        return self.canonical_form

    def __getitem__(self, array_size: int | Any) -> "Array":
        # In Py3.10 they added EllipsisType which would work better here.
        # For now, relying on the documentation.
        if isinstance(array_size, int):
            return Array(self, array_size)
        if array_size == ...:
            return Array(self, None)
        raise TypeError(f"Invalid array size specifier type: {type(array_size).__name__}")


class UInt(Type):
    """Corresponds to the Solidity ``uint<bits>`` type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `uint` bit size: {bits}")
        self._bits = bits

    @property
    def canonical_form(self) -> str:
        return f"uint{self._bits}"

    def _check_val(self, val: Any) -> int:
        # `bool` is a subclass of `int`, but we would rather be more strict
        # and prevent possible bugs.
        if not isinstance(val, int) or isinstance(val, bool):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to an integer, got {type(val).__name__}"
            )
        if val < 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a non-negative integer, got {val}"
            )
        if val >> self._bits != 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to an unsigned integer "
                f"under {self._bits} bits, got {val}"
            )
        return val

    def _normalize(self, val: Any) -> int:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> int:
        return self._check_val(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UInt) and self._bits == other._bits

    def __hash__(self) -> int:
        return hash((UInt, self._bits))


class Int(Type):
    """Corresponds to the Solidity ``int<bits>`` type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `int` bit size: {bits}")
        self._bits = bits

    @property
    def canonical_form(self) -> str:
        return f"int{self._bits}"

    def _check_val(self, val: Any) -> int:
        # `bool` is a subclass of `int`, but we would rather be more strict
        # and prevent possible bugs.
        if not isinstance(val, int) or isinstance(val, bool):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to an integer, got {type(val).__name__}"
            )
        if (val + (1 << (self._bits - 1))) >> self._bits != 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a signed integer "
                f"under {self._bits} bits, got {val}"
            )
        return val

    def _normalize(self, val: Any) -> int:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> int:
        return self._check_val(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Int) and self._bits == other._bits

    def __hash__(self) -> int:
        return hash((Int, self._bits))


class Bytes(Type):
    """Corresponds to the Solidity ``bytes<size>`` type."""

    def __init__(self, size: None | int = None):
        if size is not None and (size <= 0 or size > 32):  # noqa: PLR2004
            raise ValueError(f"Incorrect `bytes` size: {size}")
        self._size = size

    @property
    def canonical_form(self) -> str:
        return f"bytes{self._size if self._size else ''}"

    def _check_val(self, val: Any) -> bytes:
        if not isinstance(val, bytes):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to a bytestring, "
                f"got {type(val).__name__}"
            )
        if self._size is not None and len(val) != self._size:
            raise ValueError(f"Expected {self._size} bytes, got {len(val)}")
        return val

    def _normalize(self, val: Any) -> bytes:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> bytes:
        return self._check_val(val)

    def _encode_to_topic_outer(self, val: bytes) -> bytes:
        if self._size is None:
            # Dynamic `bytes` is a reference type and is therefore hashed.
            return keccak(val)
        # Sized `bytes` is a value type, falls back to the base implementation.
        return super()._encode_to_topic_outer(val)

    def _encode_to_topic_inner(self, val: bytes) -> bytes:
        if self._size is None:
            # Dynamic `bytes` is padded to a multiple of 32 bytes.
            padding_len = (32 - len(val)) % 32
            return val + b"\x00" * padding_len
        return super()._encode_to_topic_inner(val)

    def decode_from_topic(self, val: bytes) -> None | bytes:
        if self._size is None:
            # Cannot recover a hashed value.
            return None
        return super().decode_from_topic(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bytes) and self._size == other._size

    def __hash__(self) -> int:
        return hash((Bytes, self._size))


class AddressType(Type):
    """
    Corresponds to the Solidity ``address`` type.
    Not to be confused with :py:class:`~fastsettle.Address` which represents an address value.
    """

    @property
    def canonical_form(self) -> str:
        return "address"

    def _normalize(self, val: Any) -> str:
        if not isinstance(val, Address):
            raise TypeError(
                f"`address` must correspond to an `Address`-type value, got {type(val).__name__}"
            )
        return val.checksum

    def _denormalize(self, val: Any) -> Address:
        return Address.from_hex(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AddressType)

    def __hash__(self) -> int:
        return hash(AddressType)


class String(Type):
    """Corresponds to the Solidity ``string`` type."""

    @property
    def canonical_form(self) -> str:
        return "string"

    def _check_val(self, val: Any) -> str:
        if not isinstance(val, str):
            raise TypeError(
                f"`string` must correspond to a `str`-type value, got {type(val).__name__}"
            )
        return val

    def _normalize(self, val: Any) -> str:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> str:
        return self._check_val(val)

    def _encode_to_topic_outer(self, val: str) -> bytes:
        # `string` is encoded and treated as dynamic `bytes`
        return Bytes()._encode_to_topic_outer(val.encode())  # noqa: SLF001

    def _encode_to_topic_inner(self, val: str) -> bytes:
        # `string` is encoded and treated as dynamic `bytes`
        return Bytes()._encode_to_topic_inner(val.encode())  # noqa: SLF001

    def decode_from_topic(self, _val: bytes) -> None:
        # Dynamic `bytes` is hashed, so the value cannot be recovered.
        return None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, String)

    def __hash__(self) -> int:
        return hash(String)


class Bool(Type):
    """Corresponds to the Solidity ``bool`` type."""

    @property
    def canonical_form(self) -> str:
        return "bool"

    def _check_val(self, val: Any) -> bool:
        if not isinstance(val, bool):
            raise TypeError(
                f"`bool` must correspond to a `bool`-type value, got {type(val).__name__}"
            )
        return val

    def _normalize(self, val: Any) -> bool:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> bool:
        return self._check_val(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bool)

    def __hash__(self) -> int:
        return hash(Bool)


class Array(Type):
    """Corresponds to the Solidity array (``[<size>]``) type."""

    def __init__(self, element_type: Type, size: None | int = None):
        self._element_type = element_type
        self._size = size

    @cached_property
    def canonical_form(self) -> str:
        return (
            self._element_type.canonical_form + "[" + (str(self._size) if self._size else "") + "]"
        )

    def _check_val(self, val: Any) -> Sequence[Any]:
        # A string or a bytestring is iterable, but most likely passed by mistake.
        if not isinstance(val, Sequence) or isinstance(val, str | bytes):
            raise TypeError(f"Expected a sequence, got {type(val).__name__}")
        if self._size is not None and len(val) != self._size:
            raise ValueError(f"Expected {self._size} elements, got {len(val)}")
        return val

    def _normalize(self, val: Any) -> list[Any]:
        element_type = self._element_type
        return [element_type._normalize(item) for item in self._check_val(val)]  # noqa: SLF001

    def _denormalize(self, val: Any) -> list[Any]:
        element_type = self._element_type
        return [element_type._denormalize(item) for item in self._check_val(val)]  # noqa: SLF001

    def _encode_to_topic_outer(self, val: Sequence[Any]) -> bytes:
        return keccak(self._encode_to_topic_inner(val))

    def _encode_to_topic_inner(self, val: Sequence[Any]) -> bytes:
        return b"".join(
            self._element_type._encode_to_topic_inner(elem)  # noqa: SLF001
            for elem in val
        )

    def decode_from_topic(self, _val: bytes) -> None:
        return None

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Array)
            and self._element_type == other._element_type
            and self._size == other._size
        )

    def __hash__(self) -> int:
        return hash((Array, self._element_type, self._size))


class Struct(Type):
    """Corresponds to the Solidity struct type."""

    def __init__(self, fields: Mapping[str, Type]):
        self._fields = dict(fields)

    @cached_property
    def canonical_form(self) -> str:
        return "(" + ",".join(field.canonical_form for field in self._fields.values()) + ")"

    def _check_val(self, val: Any) -> Sequence[Any]:
        if not isinstance(val, Sequence) or isinstance(val, str | bytes):
            raise TypeError(f"Expected a sequence, got {type(val).__name__}")
        if len(val) != len(self._fields):
            raise ValueError(f"Expected {len(self._fields)} elements, got {len(val)}")
        return val

    def _normalize(self, val: Any) -> tuple[Any, ...]:
        if isinstance(val, Mapping):
            if val.keys() != self._fields.keys():
                raise ValueError(
                    f"Expected fields {list(self._fields.keys())}, got {list(val.keys())}"
                )
            return tuple(
                tp._normalize(val[name])  # noqa: SLF001
                for name, tp in self._fields.items()
            )

        return tuple(
            tp._normalize(item)  # noqa: SLF001
            for item, tp in zip(self._check_val(val), self._fields.values(), strict=True)
        )

    def _denormalize(self, val: Any) -> dict[str, Any]:
        return {
            name: tp._denormalize(item)  # noqa: SLF001
            for item, (name, tp) in zip(self._check_val(val), self._fields.items(), strict=True)
        }

    def _encode_to_topic_outer(self, val: Sequence[Any]) -> bytes:
        return keccak(self._encode_to_topic_inner(val))

    def _encode_to_topic_inner(self, val: Sequence[Any]) -> bytes:
        return b"".join(
            tp._encode_to_topic_inner(elem)  # noqa: SLF001
            for elem, tp in zip(val, self._fields.values(), strict=True)
        )

    def decode_from_topic(self, _val: bytes) -> None:
        return None

    def __str__(self) -> str:
        # Overriding the `Type`'s implementation because we want to show the field names too
        return "(" + ", ".join(str(tp) + " " + str(name) for name, tp in self._fields.items()) + ")"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Struct)
            and self._fields == other._fields
            # structs with the same fields but in different order are not equal
            and list(self._fields) == list(other._fields)
        )

    def __hash__(self) -> int:
        return hash((Struct, tuple(self._fields.items())))


_UINT_RE = re.compile(r"uint(\d+)")
_INT_RE = re.compile(r"int(\d+)")
_BYTES_RE = re.compile(r"bytes(\d+)?")
_ARRAY_RE = re.compile(r"^([\w\d\[\]]*?)(\[(\d+)?\])?$")

_NO_PARAMS: dict[str, Type] = {
    "address": AddressType(),
    "string": String(),
    "bool": Bool(),
}


def type_from_abi_string(abi_string: str) -> Type:
    try:
        if match := _UINT_RE.fullmatch(abi_string):
            return UInt(int(match.group(1)))
        if match := _INT_RE.fullmatch(abi_string):
            return Int(int(match.group(1)))
        if match := _BYTES_RE.fullmatch(abi_string):
            size = match.group(1)
            return Bytes(int(size) if size else None)
    except ValueError as exc:
        raise ABISchemaError(str(exc)) from exc

    if abi_string in _NO_PARAMS:
        return _NO_PARAMS[abi_string]

    raise ABISchemaError(f"Unknown type: {abi_string}")


def dispatch_type(abi_entry: Mapping[str, ABI_JSON]) -> Type:
    type_str = abi_entry.get("type")
    if not isinstance(type_str, str):
        raise ABISchemaError(f"Missing or malformed `type` field in {abi_entry}")

    match = _ARRAY_RE.match(type_str)
    if not match:
        raise ABISchemaError(f"Incorrect type format: {type_str}")

    element_type_name = match.group(1)
    is_array = match.group(2)
    array_size_str = match.group(3)
    array_size = int(array_size_str) if array_size_str is not None else None

    if is_array:
        element_entry = dict(abi_entry)
        element_entry["type"] = element_type_name
        element_type = dispatch_type(element_entry)
        return Array(element_type, array_size)

    if element_type_name == "tuple":
        components = abi_entry.get("components")
        if not isinstance(components, Sequence):
            raise ABISchemaError(f"A tuple type must have `components`, got {abi_entry}")
        fields = {}
        for component in components:
            component_typed = cast("Mapping[str, ABI_JSON]", component)
            name = component_typed.get("name")
            if not isinstance(name, str) or not name:
                raise ABISchemaError("All struct components must be named")
            if name in fields:
                raise ABISchemaError(f"Repeating struct component name: `{name}`")
            fields[name] = dispatch_type(component_typed)
        return Struct(fields)

    return type_from_abi_string(element_type_name)


def dispatch_parameter_types(
    abi_entry: ABI_JSON,
) -> dict[str, Type] | list[tuple[str | None, Type]]:
    """
    Parses a list of JSON ABI parameters.

    Returns a dictionary if all the parameters are named and the names are unique,
    and a list of pairs of (optional) names and types otherwise.
    """
    if not isinstance(abi_entry, Sequence) or isinstance(abi_entry, str):
        raise ABISchemaError(f"Expected a list of parameters, got {abi_entry!r}")

    entries = cast("Sequence[Mapping[str, ABI_JSON]]", abi_entry)
    names: list[str | None] = []
    types: list[Type] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise ABISchemaError(f"Expected a parameter entry, got {entry!r}")
        name = entry.get("name")
        names.append(name if isinstance(name, str) and name else None)
        types.append(dispatch_type(entry))

    named = [name for name in names if name is not None]
    if len(named) == len(names) and len(set(named)) == len(named):
        return dict(zip(named, types, strict=True))
    return list(zip(names, types, strict=True))


def encode_args(*types_and_args: tuple[Type, Any]) -> bytes:
    """Encodes the given values according to the paired types."""
    types = [tp for tp, _arg in types_and_args]
    normalized = [tp._normalize(arg) for tp, arg in types_and_args]  # noqa: SLF001
    try:
        return encode([tp.canonical_form for tp in types], normalized)
    except EncodingError as exc:
        raise ValueError(f"Could not encode the arguments: {exc}") from exc


def decode_args(types: Iterable[Type], data: bytes) -> tuple[Any, ...]:
    """Decodes the packed bytestring into a tuple of values according to the given types."""
    types = tuple(types)
    values = _decode_abi([tp.canonical_form for tp in types], data)
    return tuple(
        tp._denormalize(value)  # noqa: SLF001
        for tp, value in zip(types, values, strict=True)
    )
