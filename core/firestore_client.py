"""Firestore REST client for the audit log and stock check requests."""
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from core.errors import ParseError, RemoteRejection, RequestTimeout, TransportError
from core.firestore_codec import (
    check_request_from_fields,
    check_request_to_fields,
    decode_fields,
    document_id,
    encode_fields,
    log_entry_from_fields,
    log_entry_to_fields,
)
from core.models import CheckRequest, LogEntry
from utils.config_loader import AppConfig

LOGS_COLLECTION = "logs"
CHECKS_COLLECTION = "checks"

# Sorts after any suffix, so "<date>" <= ts < "<date>\uffff" selects whole days
UPPER_BOUND_SUFFIX = "\uffff"

INDEX_HINT = (
    "Firebase index required for product modification history query. "
    "Please create a composite index in Firebase Console with fields: "
    "data.id (Ascending), data.negozio (Ascending), timestamp (Descending)."
)


def _field_filter(path: str, op: str, value: Dict[str, Any]) -> Dict[str, Any]:
    return {"fieldFilter": {"field": {"fieldPath": path}, "op": op, "value": value}}


def _timestamp_range(start: str, end: str) -> List[Dict[str, Any]]:
    return [
        _field_filter("timestamp", "GREATER_THAN_OR_EQUAL", {"stringValue": start}),
        _field_filter("timestamp", "LESS_THAN", {"stringValue": end + UPPER_BOUND_SUFFIX}),
    ]


def build_logs_query(filters: List[Dict[str, Any]], limit: int) -> Dict[str, Any]:
    return {
        "structuredQuery": {
            "from": [{"collectionId": LOGS_COLLECTION}],
            "where": {"compositeFilter": {"op": "AND", "filters": filters}},
            "orderBy": [{"field": {"fieldPath": "timestamp"}, "direction": "DESCENDING"}],
            "limit": limit
        }
    }


def _sort_key(entry: LogEntry):
    try:
        return (1, datetime.fromisoformat(entry.timestamp.replace("Z", "+00:00")).timestamp(), "")
    except ValueError:
        return (0, 0.0, entry.timestamp)


def parse_log_documents(results: Any, name_filter: Optional[str] = None) -> List[LogEntry]:
    """Parse a runQuery response into log entries, newest first.

    Documents that do not match the log layout are skipped.

    Args:
        results: runQuery response (a list of ``{"document": ...}`` items)
        name_filter: Keep only entries whose product name contains this text (case-insensitive)

    Raises:
        ParseError: If the response is not a list
    """
    if not isinstance(results, list):
        raise ParseError("Response is not an array")

    needle = name_filter.lower() if name_filter else None
    logs = []
    for item in results:
        document = item.get("document") if isinstance(item, dict) else None
        if not document:
            continue
        try:
            entry = log_entry_from_fields(decode_fields(document.get("fields")))
        except ParseError as e:
            print(f"⚠️ Skipping invalid log document {document_id(document)}: {e}")
            continue
        if needle and needle not in entry.data.nome.lower():
            continue
        logs.append(entry)

    logs.sort(key=_sort_key, reverse=True)
    return logs


def parse_check_request_documents(results: Any) -> List[CheckRequest]:
    if not isinstance(results, list):
        raise ParseError("Response is not an array")

    requests_found = []
    for item in results:
        document = item.get("document") if isinstance(item, dict) else None
        if not document:
            continue
        try:
            fields = decode_fields(document.get("fields"))
            requests_found.append(check_request_from_fields(fields, doc_id=document_id(document)))
        except ParseError as e:
            print(f"⚠️ Skipping invalid check request document: {e}")
    return requests_found


class FirestoreClient:
    """Minimal Firestore REST client authenticated with a web API key."""

    def __init__(
        self,
        project_id: str,
        api_key: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        self.project_id = project_id
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = (
            f"https://firestore.googleapis.com/v1/projects/{project_id}/databases/(default)/documents"
        )
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_config(cls, config: AppConfig) -> "FirestoreClient":
        config.require_firestore()
        return cls(
            project_id=config.firebase_project_id,
            api_key=config.firebase_api_key,
            timeout=config.request_timeout
        )

    def _request(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[List] = None
    ) -> Any:
        """Send one request and decode the JSON body.

        Raises:
            RequestTimeout: If the call timed out
            TransportError: On network failure
            RemoteRejection: On a non-2xx status
            ParseError: If the body is not JSON
        """
        query = [("key", self.api_key)] + list(params or [])
        try:
            response = self.session.request(method, url, json=body, params=query, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise RequestTimeout(f"Firestore request timed out after {self.timeout}s: {e}")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to send request to Firestore: {e}")

        print(f"   📡 Firebase response status: {response.status_code}")
        if not response.ok:
            raise RemoteRejection("Firestore error", status_code=response.status_code, response_text=response.text)

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Failed to parse Firestore response: {e}")

    def _run_query(self, query: Dict[str, Any]) -> Any:
        return self._request("POST", f"{self.base_url}:runQuery", body=query)

    def create_log(self, entry: LogEntry) -> str:
        """Store an audit record.

        Returns:
            The new document id
        """
        print("🔥 Creating Firebase log...")
        print(f"   📝 Request Type: {entry.request_type}")
        print(f"   🏪 Store: {entry.data.negozio}")
        print(f"   📦 Product: {entry.data.nome}")

        document = {"fields": encode_fields(log_entry_to_fields(entry))}
        response = self._request("POST", f"{self.base_url}/{LOGS_COLLECTION}", body=document)

        doc_id = document_id(response)
        print(f"✅ Firebase log created: {doc_id}")
        return doc_id

    def get_logs(
        self,
        query: Optional[str],
        location: str,
        today: Optional[date] = None
    ) -> List[LogEntry]:
        """Today's records for a location (local date), newest first.

        Args:
            query: Optional product-name filter
            location: Location display name (``data.negozio``)
            today: Date to use instead of the local current date
        """
        day = (today or date.today()).isoformat()
        print(f"🔍 Getting logs for {location} on {day}")

        filters = _timestamp_range(day, day) + [
            _field_filter("data.negozio", "EQUAL", {"stringValue": location})
        ]
        logs = parse_log_documents(self._run_query(build_logs_query(filters, limit=100)), query)

        print(f"✅ Found {len(logs)} logs for location {location}")
        return logs

    def get_logs_date_range(
        self,
        query: Optional[str],
        location: str,
        start_date: str,
        end_date: str
    ) -> List[LogEntry]:
        """Records for a location between two dates (inclusive), newest first."""
        filters = _timestamp_range(start_date, end_date) + [
            _field_filter("data.negozio", "EQUAL", {"stringValue": location})
        ]
        logs = parse_log_documents(self._run_query(build_logs_query(filters, limit=500)), query)

        print(f"✅ Found {len(logs)} logs for location {location} from {start_date} to {end_date}")
        return logs

    def get_logs_by_product_id(
        self,
        product_id: str,
        location: str,
        start_date: str,
        end_date: str
    ) -> List[LogEntry]:
        """Records of one product at a location within a date range.

        Raises:
            RemoteRejection: With a hint about the composite index when Firestore
                reports it missing
        """
        filters = [
            _field_filter("data.id", "EQUAL", {"stringValue": str(product_id)}),
            _field_filter("data.negozio", "EQUAL", {"stringValue": location}),
        ] + _timestamp_range(start_date, end_date)

        try:
            results = self._run_query(build_logs_query(filters, limit=100))
        except RemoteRejection as e:
            text = e.response_text or ""
            if "index" in text or "FAILED_PRECONDITION" in text:
                raise RemoteRejection(INDEX_HINT, status_code=e.status_code, response_text=text)
            raise

        logs = parse_log_documents(results)
        print(f"✅ Found {len(logs)} logs for product {product_id} in {location}")
        return logs

    def create_check_request(self, check_request: CheckRequest) -> str:
        """Store a stock check request.

        Returns:
            The new document id
        """
        print("🔥 Creating check request in Firebase...")
        print(f"   📋 Product: {check_request.product_name} (ID: {check_request.product_id})")
        print(f"   📍 Locations: {', '.join(check_request.location)}")

        document = {"fields": encode_fields(check_request_to_fields(check_request))}
        response = self._request("POST", f"{self.base_url}/{CHECKS_COLLECTION}", body=document)
        return document_id(response)

    def get_check_requests(self, location: str) -> List[CheckRequest]:
        """Check requests that include a location, newest first."""
        query = {
            "structuredQuery": {
                "from": [{"collectionId": CHECKS_COLLECTION}],
                "where": _field_filter("location", "ARRAY_CONTAINS", {"stringValue": location}),
                "orderBy": [{"field": {"fieldPath": "timestamp"}, "direction": "DESCENDING"}]
            }
        }
        check_requests = parse_check_request_documents(self._run_query(query))
        print(f"✅ Found {len(check_requests)} check requests for location {location}")
        return check_requests

    def update_check_request(self, doc_id: str, status: str, closing_notes: str) -> Dict[str, Any]:
        """Close or update a check request.

        ``checked`` becomes true only for status "completed".
        """
        print(f"🔥 Updating check request {doc_id} to status: {status}")
        body = {
            "fields": {
                "status": {"stringValue": status},
                "closing_notes": {"stringValue": closing_notes},
                "checked": {"booleanValue": status == "completed"},
                "checked_at": {"stringValue": datetime.now(timezone.utc).isoformat()}
            }
        }
        params = [
            ("updateMask.fieldPaths", name)
            for name in ("status", "closing_notes", "checked", "checked_at")
        ]
        return self._request("PATCH", f"{self.base_url}/{CHECKS_COLLECTION}/{doc_id}", body=body, params=params)
