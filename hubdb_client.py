"""
HubDB sync endpoint client - typed request/response payloads over a single POST endpoint
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from check_changes import Change, ChangeType
from sheet_records import Record
from sync_config import DEFAULT_SOURCE
from sync_errors import MalformedResponse, TransportFailure

CREATE_HUBDB_ROW = 'CREATE_HUBDB_ROW'
BATCH_DELETE_HUBDB_ROWS = 'BATCH_DELETE_HUBDB_ROWS'
DELETE_HUBDB_ROW = 'DELETE_HUBDB_ROW'

JSON_HEADERS = {'Content-Type': 'application/json'}


def build_metadata(source: str, position: Optional[int] = None, **extra: Any) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        'source': source,
    }
    if position is not None:
        metadata['sourcePosition'] = position
    metadata.update(extra)
    return metadata


def record_payload(record: Optional[Record]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    data: Dict[str, Any] = dict(record.fields)
    data['remoteId'] = record.remote_id or ''
    data['sourcePosition'] = record.position
    return data


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass
class CreateRowRequest:
    unique_id: str
    record: Record
    source: str = DEFAULT_SOURCE

    def to_json(self) -> Dict[str, Any]:
        fields = self.record.fields
        return {
            'operation': CREATE_HUBDB_ROW,
            'uniqueId': self.unique_id,
            'data': {
                'dateTime': fields['dateTime'],
                'venue': fields['venue'],
                'category': fields['category'],
                'stage': fields['stage'],
                # Not tracked on the sheet; kept for the endpoint's column set
                'round': '',
                'player1': fields['player1'],
                'player2': fields['player2'],
                'results': fields['results'],
            },
            'metadata': build_metadata(self.source, self.record.position),
        }


@dataclass
class BatchDeleteRequest:
    remote_ids: List[str]
    reason: str
    source: str = DEFAULT_SOURCE

    def to_json(self) -> Dict[str, Any]:
        return {
            'operation': BATCH_DELETE_HUBDB_ROWS,
            'remoteIds': list(self.remote_ids),
            'metadata': build_metadata(self.source, reason=self.reason, totalRows=len(self.remote_ids)),
        }


@dataclass
class DeleteRowRequest:
    remote_id: str
    position: Optional[int]
    reason: str
    source: str = DEFAULT_SOURCE

    def to_json(self) -> Dict[str, Any]:
        return {
            'operation': DELETE_HUBDB_ROW,
            'remoteId': self.remote_id,
            'sourcePosition': self.position,
            'metadata': build_metadata(self.source, self.position, reason=self.reason),
        }


@dataclass
class ChangeOperation:
    change: Change
    source: str = DEFAULT_SOURCE

    def to_json(self) -> Dict[str, Any]:
        change = self.change
        if change.type == ChangeType.NEW:
            changed_fields: List[Any] = ['ALL']
        elif change.type == ChangeType.DELETED:
            changed_fields = ['DELETED']
        else:
            changed_fields = [fc.to_dict() for fc in change.changed_fields]
        return {
            'operation': change.type.value,
            'uniqueId': change.unique_id,
            'data': record_payload(change.new_record),
            'oldData': record_payload(change.old_record),
            'changedFields': changed_fields,
            'metadata': build_metadata(self.source, change.position),
        }


@dataclass
class ChangeBatchRequest:
    operations: List[ChangeOperation]

    def to_json(self) -> Dict[str, Any]:
        return {'records': [operation.to_json() for operation in self.operations]}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

def _require_object(data: Any, operation: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedResponse(f"{operation} response must be a JSON object, got {type(data).__name__}")
    if not isinstance(data.get('success'), bool):
        raise MalformedResponse(f"{operation} response is missing a boolean 'success'")
    message = data.get('message')
    if message is not None and not isinstance(message, str):
        raise MalformedResponse(f"{operation} response 'message' must be a string")
    return data


def _optional_id(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise MalformedResponse(f"HubDB row id must be a string, got {value!r}")
    return str(value)


@dataclass
class CreateRowResponse:
    success: bool
    remote_id: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def parse(cls, data: Any) -> 'CreateRowResponse':
        data = _require_object(data, CREATE_HUBDB_ROW)
        # The deployed function still answers with the legacy hubdbRowId key
        remote_id = data.get('remoteId', data.get('hubdbRowId'))
        return cls(success=data['success'], remote_id=_optional_id(remote_id), message=data.get('message'))


@dataclass
class DeleteOutcome:
    remote_id: str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'


@dataclass
class BatchDeleteResponse:
    success: bool
    results: List[DeleteOutcome] = field(default_factory=list)
    message: Optional[str] = None

    @classmethod
    def parse(cls, data: Any) -> 'BatchDeleteResponse':
        data = _require_object(data, BATCH_DELETE_HUBDB_ROWS)
        raw_results = data.get('results') or []
        if not isinstance(raw_results, list):
            raise MalformedResponse(f"{BATCH_DELETE_HUBDB_ROWS} 'results' must be a list")

        results = []
        for item in raw_results:
            if not isinstance(item, dict):
                raise MalformedResponse(f"{BATCH_DELETE_HUBDB_ROWS} result entries must be objects")
            remote_id = _optional_id(item.get('remoteId', item.get('hubdbId')))
            if remote_id is None:
                raise MalformedResponse(f"{BATCH_DELETE_HUBDB_ROWS} result entry without a row id: {item}")
            results.append(DeleteOutcome(remote_id=remote_id, status=str(item.get('status', ''))))

        return cls(success=data['success'], results=results, message=data.get('message'))

    def deleted_ids(self) -> set:
        return {outcome.remote_id for outcome in self.results if outcome.succeeded}


@dataclass
class DeleteRowResponse:
    success: bool
    message: Optional[str] = None

    @classmethod
    def parse(cls, data: Any) -> 'DeleteRowResponse':
        data = _require_object(data, DELETE_HUBDB_ROW)
        return cls(success=data['success'], message=data.get('message'))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class HubDBClient:
    """POSTs JSON payloads to the HubDB sync endpoint"""

    def __init__(
        self,
        endpoint: str,
        session: Optional[requests.Session] = None,
        timeout_seconds: int = 30,
        max_retries: int = 5,
        initial_retry_delay: float = 2,
        max_retry_delay: float = 60,
        source: str = DEFAULT_SOURCE,
    ):
        self.endpoint = endpoint
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.source = source

    @classmethod
    def from_settings(cls, settings) -> 'HubDBClient':
        return cls(
            settings.endpoint,
            timeout_seconds=settings.request_timeout,
            max_retries=settings.max_retries,
            initial_retry_delay=settings.initial_retry_delay,
            max_retry_delay=settings.max_retry_delay,
            source=settings.source,
        )

    def post(self, payload: Dict[str, Any]) -> Any:
        """POST a payload, waiting out rate limits; any other non-2xx is a TransportFailure"""
        retry_delay = self.initial_retry_delay

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.post(
                    self.endpoint, json=payload, headers=JSON_HEADERS, timeout=self.timeout_seconds
                )
            except requests.exceptions.RequestException as e:
                raise TransportFailure(f"Request to HubDB endpoint failed: {e}") from e

            # Handle rate limiting (429)
            if response.status_code == 429 and attempt < self.max_retries:
                try:
                    retry_after = float(response.headers.get('Retry-After', retry_delay))
                except (TypeError, ValueError):
                    retry_after = retry_delay
                print(f"⚠️  Rate limited. Waiting {retry_after} seconds before retry...")
                time.sleep(retry_after)
                retry_delay = min(retry_delay * 2, self.max_retry_delay)
                continue

            if not 200 <= response.status_code < 300:
                raise TransportFailure(
                    f"HubDB endpoint returned {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                )

            try:
                return response.json()
            except ValueError as e:
                raise MalformedResponse(f"Response body is not JSON: {e}") from e

        raise TransportFailure(f"Failed to complete request after {self.max_retries} retries")

    def create_row(self, unique_id: str, record: Record) -> CreateRowResponse:
        request = CreateRowRequest(unique_id=unique_id, record=record, source=self.source)
        return CreateRowResponse.parse(self.post(request.to_json()))

    def batch_delete_rows(self, remote_ids: List[str], reason: str) -> BatchDeleteResponse:
        request = BatchDeleteRequest(remote_ids=remote_ids, reason=reason, source=self.source)
        return BatchDeleteResponse.parse(self.post(request.to_json()))

    def delete_row(self, remote_id: str, position: Optional[int], reason: str) -> DeleteRowResponse:
        request = DeleteRowRequest(remote_id=remote_id, position=position, reason=reason, source=self.source)
        return DeleteRowResponse.parse(self.post(request.to_json()))

    def send_changes(self, changes: List[Change]) -> Any:
        request = ChangeBatchRequest([ChangeOperation(change, source=self.source) for change in changes])
        return self.post(request.to_json())
