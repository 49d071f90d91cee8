import inspect
from collections.abc import Iterable, Iterator, Mapping, Sequence
from collections.abc import Set as AbstractSet
from enum import Enum
from functools import cached_property
from itertools import chain
from keyword import iskeyword
from typing import Any, Generic, TypeVar, cast

from eth_utils import keccak

from . import abi
from ._abi_types import (
    ABI_JSON,
    ABIDecodingError,
    ABISchemaError,
    Type,
    decode_args,
    dispatch_parameter_types,
    encode_args,
)
from ._entities import LogEntry, LogTopic

# Anonymous events can have at most 4 indexed fields
ANONYMOUS_EVENT_INDEXED_FIELDS = 4

# Non-anonymous events can have at most 3 indexed fields
EVENT_INDEXED_FIELDS = 3

# The number of bytes in a function selector.
SELECTOR_LENGTH = 4


class LogDecodingError(Exception):
    """
    Raised when a log entry cannot be decoded as the expected event
    (wrong signature topic, wrong number of topics, or malformed data).
    """


class FieldValues:
    """
    A container for field values of an event, error, or a method return.

    Since Solidity allows fields at arbitrary positions to be anonymous,
    a dictionary cannot handle all the possibilities.
    """

    def __init__(self, values: Sequence[tuple[str | None, Any]]):
        names = [name for name, _value in values if name is not None]
        if len(names) != len(set(names)):
            raise ValueError("The values cannot have repeating names")

        self._values_seq = values
        self._values_dict = {name: value for name, value in values if name is not None}

    @cached_property
    def as_tuple(self) -> tuple[Any, ...]:
        """
        Returns the equivalent tuple representation
        (a tuple of the values with the field names omitted).
        """
        return tuple(item for _name, item in self._values_seq)

    def __getitem__(self, name: str) -> Any:
        """Returns the value with the given name."""
        return self._values_dict[name]

    def __getattr__(self, name: str) -> Any:
        """Returns the value with the given name."""
        try:
            return self._values_dict[name]
        except KeyError as exc:
            raise AttributeError(name) from exc

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldValues) and list(self._values_seq) == list(
            other._values_seq
        )

    def __repr__(self) -> str:
        return f"FieldValues({self._values_seq!r})"


class Fields:
    """
    Describes a sequence of optionally named typed values.
    These can be method parameters, method outputs, error fields,
    or event fields.
    """

    names: tuple[str | None, ...]
    """Field names."""

    types: tuple[Type, ...]
    """Field types."""

    def __init__(
        self, fields: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]]
    ):
        names: tuple[str | None, ...]
        if isinstance(fields, Mapping):
            names = tuple(fields)
            types = tuple(fields.values())
        elif all(isinstance(elem, Type) for elem in fields):
            fields = cast("Sequence[Type]", fields)
            names = tuple(None for _tp in fields)
            types = tuple(fields)
        else:
            fields = cast("Sequence[tuple[str | None, Type]]", fields)
            names = tuple(name for name, _tp in fields)
            types = tuple(tp for _name, tp in fields)

        self.names = names
        self.types = types

    @cached_property
    def named_fields(self) -> set[str]:
        return {name for name in self.names if name is not None}

    @cached_property
    def as_signature(self) -> inspect.Signature:
        """
        Returns the fields represented as a signature.

        .. note::

            In Solidity, it is possible to have named and anonymous method parameters
            or event/error fields in arbitrary order.
            This cannot be mapped to Python function signatures.
            Also it is possible that some parameter names are Python keywords,
            so they will be rejected by the Signature constructor.

            So the keyword names will be postfixed with a `_`,
            and anonymous fields will be given auto-generated names.
        """
        # Keep as many original names as possible
        existing_names = {name for name in self.names if name is not None and not iskeyword(name)}

        safe_names = []
        disambiguation_counter = 1
        for arg_num, name in enumerate(self.names):
            if name is None:
                base_name = "_" + str(arg_num + 1)
            elif iskeyword(name):
                base_name = name + "_"
            else:
                safe_names.append(name)
                continue

            # Since we renamed an existing name, there can potentially be
            # an existing one equal to it.
            safe_name = base_name
            while safe_name in existing_names:
                safe_name = base_name + "_" + str(disambiguation_counter)
                disambiguation_counter += 1

            safe_names.append(safe_name)

        return inspect.Signature(
            parameters=[
                inspect.Parameter(name, inspect.Parameter.POSITIONAL_OR_KEYWORD)
                for name in safe_names
            ]
        )

    @cached_property
    def canonical_form(self) -> str:
        """Returns the field types serialized in the canonical form as a string."""
        return "(" + ",".join(tp.canonical_form for tp in self.types) + ")"

    def encode(self, values: Iterable[Any]) -> bytes:
        """Encodes the given position values into bytes according to field types."""
        return encode_args(*zip(self.types, values, strict=True))

    def decode(self, value_bytes: bytes) -> FieldValues:
        """
        Decodes the packed bytestring into a list of pairs
        of the original parameter/field name and the value.
        """
        return FieldValues(list(zip(self.names, decode_args(self.types, value_bytes), strict=True)))


class Either:
    """Denotes an `OR` operation when filtering events."""

    def __init__(self, *items: Any):
        self.items = items


class EventFields(Fields):
    """Fields of an event structure."""

    indexed: tuple[bool, ...]
    """A sequence indicating whether the field at the given position is indexed."""

    def __init__(
        self,
        fields: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]],
        indexed: AbstractSet[str] | Sequence[bool],
    ):
        super().__init__(fields)

        self._signature = self.as_signature

        # Unique names for each field, will be used for internal field identification.
        self._safe_names = tuple(self._signature.parameters)

        if isinstance(indexed, AbstractSet):
            if not set(indexed).issubset(self.named_fields):
                raise ValueError("All the names in `indexed` must be present in the fields list")
            indexed_seq = tuple(name in indexed for name in self.names)
        else:
            indexed_seq = tuple(indexed)
            if len(indexed_seq) != len(self.names):
                raise ValueError(
                    "If `indexed` is a sequence of booleans, "
                    "its length must match the number of fields"
                )

        self.indexed = indexed_seq

        # Need to preserve the order of the names that was declared when creating the signature.
        self._indexed_names = [
            name for name, indexed in zip(self._safe_names, indexed_seq, strict=True) if indexed
        ]
        self._indexed_types = [
            tp for tp, indexed in zip(self.types, indexed_seq, strict=True) if indexed
        ]

        self._nonindexed_names = [
            name for name, indexed in zip(self._safe_names, indexed_seq, strict=True) if not indexed
        ]
        self._nonindexed_types = [
            tp for tp, indexed in zip(self.types, indexed_seq, strict=True) if not indexed
        ]

    def check_filterable(self, name: str) -> None:
        """Raises ``TypeError`` if there is no indexed field with the given (safe) name."""
        if name not in self._safe_names:
            raise TypeError(f"Unknown field `{name}`")
        if name not in self._indexed_names:
            raise TypeError(f"Field `{name}` is not indexed and cannot be filtered on")

    def encode_to_topics(self, *args: Any, **kwargs: Any) -> tuple[None | tuple[bytes, ...], ...]:
        """
        Binds given arguments to event's indexed parameters
        and encodes them as log topics.

        .. note::

            If keyword arguments are used, any field names that matched Python keywords
            need to be postfixed by a `_`.
        """
        bound_args = self._signature.bind_partial(*args, **kwargs)

        encoded_topics: list[None | tuple[bytes, ...]] = []
        for safe_name, tp, indexed in zip(self._safe_names, self.types, self.indexed, strict=True):
            if safe_name not in bound_args.arguments:
                if indexed:
                    encoded_topics.append(None)
                continue

            if not indexed:
                raise TypeError(f"Field `{safe_name}` is not indexed and cannot be filtered on")

            bound_val = bound_args.arguments[safe_name]

            if isinstance(bound_val, Either):
                encoded_val = tuple(tp.encode_to_topic(elem) for elem in bound_val.items)
            else:
                # Make it a one-element tuple to simplify type signatures.
                encoded_val = (tp.encode_to_topic(bound_val),)

            encoded_topics.append(encoded_val)

        # remove trailing `None`s - they are redundant
        while encoded_topics and encoded_topics[-1] is None:
            encoded_topics.pop()

        return tuple(encoded_topics)

    def decode_log_entry(self, topics: Sequence[bytes], data: bytes) -> FieldValues:
        """Decodes the event fields from the given log entry data."""
        if len(topics) != len(self._indexed_names):
            raise ValueError(
                f"The number of topics in the log entry ({len(topics)}) does not match "
                f"the number of indexed fields in the event ({len(self._indexed_names)})"
            )

        decoded_topics: dict[str, Any] = {
            name: tp.decode_from_topic(topic)
            for name, tp, topic in zip(
                self._indexed_names, self._indexed_types, topics, strict=True
            )
        }

        decoded_data_tuple = decode_args(self._nonindexed_types, data)
        decoded_nonindexed = dict(zip(self._nonindexed_names, decoded_data_tuple, strict=True))

        # Assemble preserving the field order
        decoded_data = []
        for safe_name, name in zip(self._safe_names, self.names, strict=True):
            if safe_name in decoded_topics:
                decoded_data.append((name, decoded_topics[safe_name]))
            else:
                decoded_data.append((name, decoded_nonindexed[safe_name]))

        return FieldValues(decoded_data)


def _get_field(entry: Mapping[str, ABI_JSON], name: str, tp: type) -> Any:
    if name not in entry:
        raise ABISchemaError(f"Missing field `{name}` in the ABI entry {dict(entry)}")
    value = entry[name]
    if not isinstance(value, tp):
        raise ABISchemaError(
            f"Field `{name}` in the ABI entry must be of type `{tp.__name__}`, got {value!r}"
        )
    return value


class Mutability(Enum):
    """Possible states of a contract's method mutability."""

    PURE = "pure"
    """Solidity's ``pure`` (does not read or write the contract state)."""
    VIEW = "view"
    """Solidity's ``view`` (may read the contract state)."""
    NONPAYABLE = "nonpayable"
    """Solidity's ``nonpayable`` (may write the contract state)."""
    PAYABLE = "payable"
    """
    Solidity's ``payable`` (may write the contract state
    and accept associated funds with transactions).
    """

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "Mutability":
        try:
            return cls(entry)
        except ValueError as exc:
            raise ABISchemaError(f"Unknown mutability identifier: {entry}") from exc

    @property
    def payable(self) -> bool:
        return self == Mutability.PAYABLE

    @property
    def mutating(self) -> bool:
        return self in {Mutability.PAYABLE, Mutability.NONPAYABLE}


class Method:
    """
    A contract method.

    .. note::

       If the name of a parameter (input or output) given to the constructor
       matches a Python keyword, ``_`` will be appended to it.
    """

    name: str
    """The name of this method."""

    inputs: Fields
    """The input signature of this method."""

    outputs: Fields
    """The output signature of this method."""

    payable: bool
    """Whether this method is marked as payable."""

    mutating: bool
    """Whether this method may mutate the contract state."""

    @classmethod
    def from_json(cls, method_entry: ABI_JSON) -> "Method":
        """Creates this object from a JSON ABI method entry."""
        if not isinstance(method_entry, Mapping):
            raise ABISchemaError(f"Expected an ABI entry, got {method_entry!r}")
        if method_entry.get("type") != "function":
            raise ABISchemaError(
                "Method object must be created from a JSON entry with type='function'"
            )

        name = _get_field(method_entry, "name", str)
        inputs = dispatch_parameter_types(method_entry.get("inputs", []))
        mutability = Mutability.from_json(_get_field(method_entry, "stateMutability", str))
        outputs = dispatch_parameter_types(method_entry.get("outputs", []))

        return cls(name=name, inputs=inputs, outputs=outputs, mutability=mutability)

    def __init__(
        self,
        name: str,
        mutability: Mutability,
        inputs: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]],
        outputs: None
        | Mapping[str, Type]
        | Sequence[Type]
        | Sequence[tuple[str | None, Type]]
        | Type = None,
    ):
        self.name = name
        self.inputs = Fields(inputs)
        self._inputs_signature = self.inputs.as_signature
        self.payable = mutability.payable
        self.mutating = mutability.mutating

        if outputs is None:
            outputs = []
        if isinstance(outputs, Type):
            outputs = [(None, outputs)]

        self.outputs = Fields(outputs)

    def __call__(self, *args: Any, **kwargs: Any) -> "MethodCall":
        """
        Returns an encoded call with given arguments.
        Raises ``TypeError`` if the arguments do not match the inputs,
        and ``TypeError`` or ``ValueError`` if they cannot be encoded.
        """
        bound_args = self._inputs_signature.bind(*args, **kwargs)
        return MethodCall(self, self.selector + self.inputs.encode(bound_args.args))

    @cached_property
    def selector(self) -> bytes:
        """Method's selector."""
        return keccak(self.name.encode() + self.inputs.canonical_form.encode())[:SELECTOR_LENGTH]

    def decode_output(self, output_bytes: bytes) -> Any:
        """
        Decodes the output from ABI-packed bytes.

        If there is only a single output, its value is returned.
        If all the fields in the output are unnamed, it is returned as a tuple of values.
        Otherwise it is returned as a :py:class:`FieldValues` object.
        """
        results = self.outputs.decode(output_bytes)

        if len(self.outputs.names) == 1:
            return results.as_tuple[0]
        if all(name is None for name in self.outputs.names):
            return results.as_tuple

        return results


class Event:
    """
    A contract event.

    .. note::

       If the name of a field given to the constructor matches a Python keyword,
       ``_`` will be appended to it.
    """

    name: str
    """The name of this event."""

    fields: EventFields
    """The event fields."""

    anonymous: bool
    """Whether the event is anonymous."""

    @classmethod
    def from_json(cls, event_entry: ABI_JSON) -> "Event":
        """Creates this object from a JSON ABI event entry."""
        if not isinstance(event_entry, Mapping):
            raise ABISchemaError(f"Expected an ABI entry, got {event_entry!r}")
        if event_entry.get("type") != "event":
            raise ABISchemaError("Event object must be created from a JSON entry with type='event'")

        name = _get_field(event_entry, "name", str)
        inputs = _get_field(event_entry, "inputs", list)
        fields = dispatch_parameter_types(inputs)
        indexed = [bool(input_.get("indexed", False)) for input_ in inputs]

        try:
            return cls(
                name=name,
                fields=fields,
                indexed=indexed,
                anonymous=bool(event_entry.get("anonymous", False)),
            )
        except ValueError as exc:
            raise ABISchemaError(str(exc)) from exc

    def __init__(
        self,
        name: str,
        fields: Mapping[str, Type] | Sequence[tuple[str | None, Type]],
        indexed: AbstractSet[str] | Sequence[bool],
        *,
        anonymous: bool = False,
    ):
        self.name = name
        self.fields = EventFields(fields, indexed)
        self.anonymous = anonymous

        indexed_num = sum(self.fields.indexed)

        if anonymous and indexed_num > ANONYMOUS_EVENT_INDEXED_FIELDS:
            raise ValueError(
                f"Anonymous events can have at most {ANONYMOUS_EVENT_INDEXED_FIELDS} indexed fields"
            )
        if not anonymous and indexed_num > EVENT_INDEXED_FIELDS:
            raise ValueError(
                f"Non-anonymous events can have at most {EVENT_INDEXED_FIELDS} indexed fields"
            )

    @cached_property
    def topic(self) -> LogTopic:
        """The topic representing this event's signature."""
        return LogTopic(keccak(self.name.encode() + self.fields.canonical_form.encode()))

    def __call__(self, *args: Any, **kwargs: Any) -> "EventFilter":
        """
        Creates an event filter from provided values for indexed parameters.
        Some arguments can be omitted, which will mean that the filter
        will match events with any value of that parameter.
        :py:class:`Either` can be used to denote an OR operation and match
        either of several values of a parameter.
        """
        encoded_topics = self.fields.encode_to_topics(*args, **kwargs)

        log_topics: list[None | tuple[LogTopic, ...]] = []
        if not self.anonymous:
            log_topics.append((self.topic,))
        for topic in encoded_topics:
            if topic is None:
                log_topics.append(None)
            else:
                log_topics.append(tuple(LogTopic(elem) for elem in topic))

        return EventFilter(tuple(log_topics))

    def filter_by(self, **criteria: Iterable[Any]) -> "EventFilter":
        """
        Creates an event filter where each keyword argument lists the acceptable values
        of the indexed field with that name.
        An empty collection matches any value of the field.
        """
        kwargs = {}
        for name, values in criteria.items():
            self.fields.check_filterable(name)
            values = tuple(values)
            if values:
                kwargs[name] = Either(*values)
        return self(**kwargs)

    def decode_log_entry(self, log_entry: LogEntry) -> FieldValues:
        """
        Decodes the event fields from the given log entry.
        Fields that cannot be decoded (indexed reference types,
        which are hashed before saving them to the log) are set to ``None``.

        Raises :py:class:`LogDecodingError` if the log entry does not match this event.
        """
        topics = log_entry.topics
        if not self.anonymous:
            if not topics or topics[0] != self.topic:
                raise LogDecodingError(f"This log entry does not belong to the event `{self.name}`")
            topics = topics[1:]

        try:
            return self.fields.decode_log_entry([bytes(topic) for topic in topics], log_entry.data)
        except (ABIDecodingError, ValueError, TypeError) as exc:
            raise LogDecodingError(f"Failed to decode the event `{self.name}`: {exc}") from exc


class EventFilter:
    """A filter for events coming from any contract address."""

    topics: tuple[None | tuple[LogTopic, ...], ...]
    """
    Acceptable values for each topic position; ``None`` at a position matches any value.
    """

    def __init__(self, topics: tuple[None | tuple[LogTopic, ...], ...]):
        self.topics = topics

    def matches(self, topics: Sequence[LogTopic]) -> bool:
        """
        Returns ``True`` if the given log topics satisfy this filter
        (with the same semantics the nodes use for ``eth_getLogs``).
        """
        if len(topics) < len(self.topics):
            return False
        return all(
            alternatives is None or topic in alternatives
            for alternatives, topic in zip(self.topics, topics, strict=False)
        )


class Error:
    """A custom contract error."""

    name: str
    """The name of the error structure."""

    fields: Fields
    """The fields of the structure."""

    @classmethod
    def from_json(cls, error_entry: ABI_JSON) -> "Error":
        """Creates this object from a JSON ABI error entry."""
        if not isinstance(error_entry, Mapping):
            raise ABISchemaError(f"Expected an ABI entry, got {error_entry!r}")
        if error_entry.get("type") != "error":
            raise ABISchemaError("Error object must be created from a JSON entry with type='error'")

        name = _get_field(error_entry, "name", str)
        fields = dispatch_parameter_types(error_entry.get("inputs", []))

        return cls(name=name, fields=fields)

    def __init__(
        self,
        name: str,
        fields: Mapping[str, Type] | Sequence[Type] | Sequence[tuple[str | None, Type]],
    ):
        self.name = name
        self.fields = Fields(fields)

    @cached_property
    def selector(self) -> bytes:
        """Error's selector."""
        return keccak(self.name.encode() + self.fields.canonical_form.encode())[:SELECTOR_LENGTH]

    def decode_fields(self, data_bytes: bytes) -> FieldValues:
        """Decodes the error fields from the given packed data."""
        return self.fields.decode(data_bytes)


class MethodCall:
    """A call to a contract's regular method."""

    data_bytes: bytes
    """Encoded call arguments with the selector."""

    method: Method
    """The method object that encoded this call."""

    def __init__(self, method: Method, data_bytes: bytes):
        self.method = method
        self.data_bytes = data_bytes


MethodType = TypeVar("MethodType")


class Methods(Generic[MethodType]):
    """
    Bases: ``Generic`` [``MethodType``].

    A holder for named methods which can be accessed as attributes,
    or iterated over.
    """

    def __init__(self, methods_dict: Mapping[str, MethodType]):
        self._methods_dict = methods_dict

    def __getattr__(self, method_name: str) -> MethodType:
        """Returns the method by name."""
        try:
            return self._methods_dict[method_name]
        except KeyError as exc:
            raise AttributeError(method_name) from exc

    def __getitem__(self, method_name: str) -> MethodType:
        """Returns the method by name."""
        return self._methods_dict[method_name]

    def __contains__(self, method_name: object) -> bool:
        return method_name in self._methods_dict

    def __iter__(self) -> Iterator[MethodType]:
        """Returns the iterator over all methods."""
        return iter(self._methods_dict.values())


PANIC_ERROR = Error("Panic", dict(code=abi.uint(256)))


LEGACY_ERROR = Error("Error", dict(message=abi.string))


class UnknownError(Exception):
    pass


# Entry types that carry no callable surface for a deployed contract binding.
_IGNORED_ENTRY_TYPES = {"constructor", "fallback", "receive"}


class ContractABI:
    """
    A wrapper for contract ABI.

    Contract items are grouped by type and are accessible via the attributes below.
    """

    method: Methods[Method]
    """Contract's regular methods."""

    event: Methods[Event]
    """Contract's events."""

    error: Methods[Error]
    """Contract's errors."""

    @classmethod
    def from_json(cls, json_abi: ABI_JSON) -> "ContractABI":
        """
        Creates this object from a JSON ABI (e.g. generated by a Solidity compiler).

        Raises :py:class:`ABISchemaError` if the ABI is malformed,
        or contains overloaded methods.
        """
        if not isinstance(json_abi, Sequence) or isinstance(json_abi, str):
            raise ABISchemaError("JSON ABI must be a list of entries")

        methods: dict[str, Method] = {}
        events: dict[str, Event] = {}
        errors: dict[str, Error] = {}

        for entry in json_abi:
            if not isinstance(entry, Mapping):
                raise ABISchemaError(f"Expected an ABI entry, got {entry!r}")
            entry_type = entry.get("type")

            if entry_type in _IGNORED_ENTRY_TYPES:
                continue

            if entry_type == "function":
                method = Method.from_json(entry)
                if method.name in methods:
                    raise ABISchemaError(f"Overloaded methods are not supported: `{method.name}`")
                methods[method.name] = method

            elif entry_type == "event":
                event = Event.from_json(entry)
                if event.name in events:
                    raise ABISchemaError(
                        f"JSON ABI contains more than one declarations of `{event.name}`"
                    )
                events[event.name] = event

            elif entry_type == "error":
                error = Error.from_json(entry)
                if error.name in errors:
                    raise ABISchemaError(
                        f"JSON ABI contains more than one declarations of `{error.name}`"
                    )
                errors[error.name] = error

            else:
                raise ABISchemaError(f"Unknown ABI entry type: {entry_type}")

        return cls(methods=methods.values(), events=events.values(), errors=errors.values())

    def __init__(
        self,
        methods: None | Iterable[Method] = None,
        events: None | Iterable[Event] = None,
        errors: None | Iterable[Error] = None,
    ):
        self.method = Methods({method.name: method for method in (methods or [])})
        self.event = Methods({event.name: event for event in (events or [])})
        self.error = Methods({error.name: error for error in (errors or [])})

        self._error_by_selector = {
            error.selector: error for error in chain([PANIC_ERROR, LEGACY_ERROR], self.error)
        }

    def resolve_error(self, error_data: bytes) -> tuple[Error, FieldValues]:
        """
        Given the packed error data, attempts to find the error in the ABI
        and decode the data into its fields.
        """
        if len(error_data) < SELECTOR_LENGTH:
            raise UnknownError("Error data too short to contain a selector")

        selector, data = error_data[:SELECTOR_LENGTH], error_data[SELECTOR_LENGTH:]

        if selector in self._error_by_selector:
            error = self._error_by_selector[selector]
            try:
                decoded = error.decode_fields(data)
            except ABIDecodingError as exc:
                raise UnknownError(f"Failed to decode the fields of `{error.name}`: {exc}") from exc
            return error, decoded

        raise UnknownError(f"Could not find an error with selector {selector.hex()} in the ABI")
