"""Typed Firestore REST values and the document layouts of audit logs and check requests.

Firestore's REST API wraps every value in a single-key object naming its type,
e.g. ``{"stringValue": "x"}`` or ``{"integerValue": "5"}`` (integers travel as
strings). Values here are explicit tagged classes, and each record type has a
fixed field layout, so a document is never decoded by guessing from its shape.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.errors import ParseError
from core.models import CheckRequest, LogData, LogEntry


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class IntegerValue:
    value: int


@dataclass(frozen=True)
class BooleanValue:
    value: bool


@dataclass(frozen=True)
class ArrayValue:
    values: List["FirestoreValue"] = field(default_factory=list)


@dataclass(frozen=True)
class MapValue:
    fields: Dict[str, "FirestoreValue"] = field(default_factory=dict)


FirestoreValue = Union[StringValue, IntegerValue, BooleanValue, ArrayValue, MapValue]
Fields = Dict[str, FirestoreValue]


def encode_value(value: FirestoreValue) -> Dict[str, Any]:
    """Serialize a tagged value to its REST JSON form."""
    if isinstance(value, StringValue):
        return {"stringValue": value.value}
    if isinstance(value, BooleanValue):
        return {"booleanValue": value.value}
    if isinstance(value, IntegerValue):
        return {"integerValue": str(value.value)}
    if isinstance(value, ArrayValue):
        return {"arrayValue": {"values": [encode_value(v) for v in value.values]}}
    if isinstance(value, MapValue):
        return {"mapValue": {"fields": encode_fields(value.fields)}}
    raise TypeError(f"Not a Firestore value: {value!r}")


def encode_fields(fields: Fields) -> Dict[str, Any]:
    return {name: encode_value(value) for name, value in fields.items()}


def decode_value(raw: Any) -> FirestoreValue:
    """Parse one REST JSON value.

    Raises:
        ParseError: If the value has an unknown type tag or a malformed payload
    """
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ParseError(f"Invalid Firestore value: {raw!r}")

    tag, payload = next(iter(raw.items()))
    if tag == "stringValue" and isinstance(payload, str):
        return StringValue(payload)
    if tag == "booleanValue" and isinstance(payload, bool):
        return BooleanValue(payload)
    if tag == "integerValue":
        try:
            return IntegerValue(int(payload))
        except (TypeError, ValueError):
            raise ParseError(f"Invalid integerValue: {payload!r}")
    if tag == "arrayValue" and isinstance(payload, dict):
        # Firestore omits "values" for an empty array
        return ArrayValue([decode_value(v) for v in payload.get("values", [])])
    if tag == "mapValue" and isinstance(payload, dict):
        return MapValue(decode_fields(payload.get("fields", {})))
    raise ParseError(f"Unsupported Firestore value: {raw!r}")


def decode_fields(raw: Any) -> Fields:
    if not isinstance(raw, dict):
        raise ParseError(f"Invalid Firestore fields: {raw!r}")
    return {name: decode_value(value) for name, value in raw.items()}


def document_id(document: Dict[str, Any]) -> str:
    """Last segment of ``projects/.../documents/<collection>/<id>``."""
    name = document.get("name") if isinstance(document, dict) else None
    if not name:
        return "unknown"
    return name.rstrip("/").split("/")[-1]


# Field accessors for decoding record layouts

def _string(fields: Fields, name: str) -> str:
    value = fields.get(name)
    if not isinstance(value, StringValue):
        raise ParseError(f"Missing or invalid {name} field")
    return value.value


def _optional_string(fields: Fields, name: str) -> Optional[str]:
    value = fields.get(name)
    return value.value if isinstance(value, StringValue) else None


def _integer(fields: Fields, name: str) -> int:
    value = fields.get(name)
    if not isinstance(value, IntegerValue):
        raise ParseError(f"Missing or invalid {name} field")
    return value.value


def _optional_integer(fields: Fields, name: str) -> Optional[int]:
    value = fields.get(name)
    return value.value if isinstance(value, IntegerValue) else None


def _boolean(fields: Fields, name: str) -> bool:
    value = fields.get(name)
    if isinstance(value, BooleanValue):
        return value.value
    # Older check requests stored booleans as "true"/"false" strings
    if isinstance(value, StringValue):
        return value.value.strip().lower() == "true"
    return False


def _string_list(fields: Fields, name: str) -> List[str]:
    value = fields.get(name)
    if value is None:
        return []
    if not isinstance(value, ArrayValue):
        raise ParseError(f"Invalid {name} array field")
    return [v.value for v in value.values if isinstance(v, StringValue)]


def _string_array(values: List[str]) -> ArrayValue:
    return ArrayValue([StringValue(v) for v in values])


def log_entry_to_fields(entry: LogEntry) -> Fields:
    data = entry.data
    return {
        "requestType": StringValue(entry.request_type),
        "timestamp": StringValue(entry.timestamp),
        "data": MapValue({
            "id": StringValue(data.id),
            "variant": StringValue(data.variant),
            "negozio": StringValue(data.negozio),
            "inventory_item_id": StringValue(data.inventory_item_id),
            "nome": StringValue(data.nome),
            "prezzo": StringValue(data.prezzo),
            "rettifica": IntegerValue(data.rettifica),
            "images": _string_array(data.images),
        }),
    }


def log_entry_from_fields(fields: Fields) -> LogEntry:
    """Build a LogEntry from decoded document fields.

    Raises:
        ParseError: If a required field is missing or has the wrong type
    """
    data = fields.get("data")
    if not isinstance(data, MapValue):
        raise ParseError("Missing data map")
    data_fields = data.fields

    # inventory_item_id was written as an integer by older clients
    item_id = data_fields.get("inventory_item_id")
    if isinstance(item_id, (StringValue, IntegerValue)):
        inventory_item_id = str(item_id.value)
    else:
        raise ParseError("Missing or invalid inventory_item_id field")

    return LogEntry(
        request_type=_string(fields, "requestType"),
        timestamp=_string(fields, "timestamp"),
        data=LogData(
            id=_string(data_fields, "id"),
            variant=_string(data_fields, "variant"),
            negozio=_string(data_fields, "negozio"),
            inventory_item_id=inventory_item_id,
            nome=_string(data_fields, "nome"),
            prezzo=_string(data_fields, "prezzo"),
            rettifica=_integer(data_fields, "rettifica"),
            images=_string_list(data_fields, "images")
        )
    )


def check_request_to_fields(request: CheckRequest) -> Fields:
    fields: Fields = {
        "check_all": BooleanValue(request.check_all),
        "checked": BooleanValue(request.checked),
        "location": _string_array(request.location),
        "notes": StringValue(request.notes),
        "priority": StringValue(request.priority),
        "product_id": IntegerValue(request.product_id),
        "product_name": StringValue(request.product_name),
        "requested_by": StringValue(request.requested_by),
        "status": StringValue(request.status),
        "timestamp": StringValue(request.timestamp),
    }
    optional_strings = {
        "checked_at": request.checked_at,
        "checked_by": request.checked_by,
        "variant_name": request.variant_name,
        "image_url": request.image_url,
        "closing_notes": request.closing_notes,
    }
    for name, value in optional_strings.items():
        if value is not None:
            fields[name] = StringValue(value)
    if request.variant_id is not None:
        fields["variant_id"] = IntegerValue(request.variant_id)
    return fields


def check_request_from_fields(fields: Fields, doc_id: Optional[str] = None) -> CheckRequest:
    """Build a CheckRequest from decoded document fields.

    Raises:
        ParseError: If a required field is missing or ``location`` is empty
    """
    location = _string_list(fields, "location")
    if not location:
        raise ParseError("location array is empty")

    return CheckRequest(
        id=doc_id,
        location=location,
        priority=_string(fields, "priority"),
        product_id=_integer(fields, "product_id"),
        product_name=_string(fields, "product_name"),
        requested_by=_string(fields, "requested_by"),
        status=_string(fields, "status"),
        timestamp=_string(fields, "timestamp"),
        notes=_optional_string(fields, "notes") or "",
        check_all=_boolean(fields, "check_all"),
        checked=_boolean(fields, "checked"),
        checked_at=_optional_string(fields, "checked_at"),
        checked_by=_optional_string(fields, "checked_by"),
        variant_id=_optional_integer(fields, "variant_id"),
        variant_name=_optional_string(fields, "variant_name"),
        image_url=_optional_string(fields, "image_url"),
        closing_notes=_optional_string(fields, "closing_notes")
    )
