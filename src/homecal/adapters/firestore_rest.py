"""Firestore REST adapter - HTTP client for households and tasks."""

import logging
import time
from datetime import datetime, timezone

import requests

from homecal.config import Config, Tokens, load_config
from homecal.core.dates import ensure_aware
from homecal.core.household import Child, Household
from homecal.core.tasks import ACTIVE_STATUSES, Task, TaskValidationError
from homecal.errors import AuthenticationError, RepositoryError

logger = logging.getLogger(__name__)

API_BASE = "https://firestore.googleapis.com/v1"
TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
REQUEST_TIMEOUT = 30
# Seconds before expiry at which the id token is refreshed
REFRESH_MARGIN = 300


def _parse_timestamp(value: str) -> datetime:
    """RFC 3339 timestamp; Firestore may send nanoseconds, trimmed to micros."""
    text = value.replace("Z", "+00:00")
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        for ch in rest:
            if not ch.isdigit():
                break
            digits += ch
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    return datetime.fromisoformat(text)


def decode_value(value: dict):
    """Convert a Firestore typed value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return value["geoPointValue"]
    if "bytesValue" in value:
        return value["bytesValue"]
    raise RepositoryError(f"Unknown Firestore value type: {sorted(value)}")


def decode_fields(fields: dict) -> dict:
    return {key: decode_value(v) for key, v in fields.items()}


def encode_value(value) -> dict:
    """Convert a plain Python value into a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        utc = ensure_aware(value).astimezone(timezone.utc)
        return {"timestampValue": utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    raise TypeError(f"Cannot encode {type(value).__name__} for Firestore")


def _doc_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def _quote_segment(segment: str) -> str:
    """Quote a field path segment that is not a simple identifier."""
    if segment.replace("_", "a").isalnum() and not segment[0].isdigit():
        return segment
    return "`" + segment.replace("\\", "\\\\").replace("`", "\\`") + "`"


class FirestoreAdapter:
    """
    Firestore REST adapter.

    Implements TaskRepository and HouseholdRepository protocols. Handles
    token refresh and the REST calls. No calendar logic - just I/O.
    """

    def __init__(self, config: Config | None = None, tokens: Tokens | None = None):
        self.config = config or load_config()
        self.tokens = tokens or Tokens.load()
        self._session = requests.Session()
        if not self.config.firestore_project_id:
            raise RepositoryError("FIRESTORE_PROJECT_ID not configured")

    @property
    def _database(self) -> str:
        return f"projects/{self.config.firestore_project_id}/databases/(default)"

    @property
    def _documents_url(self) -> str:
        return f"{API_BASE}/{self._database}/documents"

    def _doc_name(self, *segments: str) -> str:
        return "/".join([self._database, "documents", *segments])

    def _ensure_valid_token(self) -> None:
        """Fail without an id token; refresh one that is about to expire."""
        if not self.tokens.id_token:
            raise AuthenticationError("No id token. Sign in with the app and export tokens first.")

        if self.tokens.expires_at and time.time() >= self.tokens.expires_at - REFRESH_MARGIN:
            self._refresh_token()

    def _refresh_token(self) -> None:
        """Exchange the refresh token for a new id token and persist both."""
        if not self.tokens.refresh_token:
            raise AuthenticationError("No refresh token. Sign in again.")
        if not self.config.firebase_api_key:
            raise AuthenticationError("FIREBASE_API_KEY not configured")

        try:
            resp = self._session.post(
                TOKEN_URL,
                params={"key": self.config.firebase_api_key},
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.tokens.refresh_token,
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise RepositoryError(f"Token refresh failed: {e}") from e

        if resp.status_code != 200:
            raise AuthenticationError(f"Token refresh failed: {resp.text}")

        data = resp.json()
        self.tokens.id_token = data["id_token"]
        if "refresh_token" in data:
            self.tokens.refresh_token = data["refresh_token"]
        self.tokens.expires_at = int(time.time()) + int(data.get("expires_in", 3600))
        self.tokens.save()
        logger.debug("Refreshed Firebase id token")

    def _request(self, method: str, url: str, json_body: dict | None = None, params: dict | None = None):
        """Make authenticated API request. Returns parsed JSON, or None on 404."""
        self._ensure_valid_token()
        try:
            resp = self._session.request(
                method,
                url,
                json=json_body,
                params=params,
                headers={"Authorization": f"Bearer {self.tokens.id_token}"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise RepositoryError(f"Firestore request failed: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthenticationError(f"Firestore rejected credentials: {resp.text}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise RepositoryError(f"Firestore error {resp.status_code}: {resp.text}")
        return resp.json()

    def _run_query(self, household_id: str, structured_query: dict) -> list[Task]:
        url = f"{self._documents_url}/households/{household_id}:runQuery"
        rows = self._request("POST", url, json_body={"structuredQuery": structured_query}) or []
        tasks = []
        for row in rows:
            doc = row.get("document")
            if not doc:
                continue
            task_id = _doc_id(doc["name"])
            try:
                tasks.append(Task.from_doc(task_id, decode_fields(doc.get("fields", {}))))
            except TaskValidationError as e:
                logger.warning(f"Skipping task {task_id} in {household_id}: {e}")
        return tasks

    @staticmethod
    def _status_filter() -> dict:
        return {
            "fieldFilter": {
                "field": {"fieldPath": "status"},
                "op": "IN",
                "value": encode_value([s.value for s in ACTIVE_STATUSES]),
            }
        }

    def _range_query(self, field_path: str, start: datetime, end: datetime) -> dict:
        return {
            "from": [{"collectionId": "tasks"}],
            "where": {
                "compositeFilter": {
                    "op": "AND",
                    "filters": [
                        self._status_filter(),
                        {
                            "fieldFilter": {
                                "field": {"fieldPath": field_path},
                                "op": "GREATER_THAN_OR_EQUAL",
                                "value": encode_value(start),
                            }
                        },
                        {
                            "fieldFilter": {
                                "field": {"fieldPath": field_path},
                                "op": "LESS_THAN_OR_EQUAL",
                                "value": encode_value(end),
                            }
                        },
                    ],
                }
            },
            "orderBy": [{"field": {"fieldPath": field_path}, "direction": "ASCENDING"}],
        }

    def get_task(self, household_id: str, task_id: str) -> Task | None:
        doc = self._request("GET", f"{self._documents_url}/households/{household_id}/tasks/{task_id}")
        if not doc:
            return None
        try:
            return Task.from_doc(task_id, decode_fields(doc.get("fields", {})))
        except TaskValidationError as e:
            raise RepositoryError(str(e)) from e

    def fetch_in_range(self, household_id: str, start: datetime, end: datetime) -> list[Task]:
        """
        Fetch active tasks by nextOccurrenceAt OR dueAt in range.

        Two queries are merged by id, keeping the copy with the earlier
        effective instant, and sorted by effective instant.
        """
        by_next = self._run_query(household_id, self._range_query("nextOccurrenceAt", start, end))
        by_due = self._run_query(household_id, self._range_query("dueAt", start, end))
        return merge_task_results(by_next, by_due)

    def fetch_recurring(self, household_id: str) -> list[Task]:
        """Fetch active tasks with a recurrence rule."""
        query = {
            "from": [{"collectionId": "tasks"}],
            "where": self._status_filter(),
        }
        return [t for t in self._run_query(household_id, query) if t.recurrence is not None]

    def get_household(self, household_id: str) -> Household | None:
        doc = self._request("GET", f"{self._documents_url}/households/{household_id}")
        if not doc:
            return None
        return Household.from_doc(household_id, decode_fields(doc.get("fields", {})))

    def list_children(self, household_id: str) -> list[Child]:
        url = f"{self._documents_url}/households/{household_id}/children"
        children = []
        page_token = None
        while True:
            params = {"pageSize": 300}
            if page_token:
                params["pageToken"] = page_token
            data = self._request("GET", url, params=params) or {}
            for doc in data.get("documents", []):
                children.append(Child.from_doc(_doc_id(doc["name"]), decode_fields(doc.get("fields", {}))))
            page_token = data.get("nextPageToken")
            if not page_token:
                return children

    def _commit(self, writes: list[dict]) -> None:
        self._request("POST", f"{API_BASE}/{self._database}/documents:commit", json_body={"writes": writes})

    def _update(self, household_id: str, task_id: str, fields: dict, mask: list[str]) -> None:
        self._commit(
            [
                {
                    "update": {
                        "name": self._doc_name("households", household_id, "tasks", task_id),
                        "fields": {k: encode_value(v) for k, v in fields.items()},
                    },
                    "updateMask": {"fieldPaths": mask},
                    "currentDocument": {"exists": True},
                    "updateTransforms": [{"fieldPath": "updatedAt", "setToServerValue": "REQUEST_TIME"}],
                }
            ]
        )

    def add_skip_date(self, household_id: str, task_id: str, day_key: str) -> None:
        self._commit(
            [
                {
                    "transform": {
                        "document": self._doc_name("households", household_id, "tasks", task_id),
                        "fieldTransforms": [
                            {
                                "fieldPath": "skipDates",
                                "appendMissingElements": {"values": [encode_value(day_key)]},
                            },
                            {"fieldPath": "updatedAt", "setToServerValue": "REQUEST_TIME"},
                        ],
                    }
                }
            ]
        )
        logger.info(f"Skipped {task_id} on {day_key}")

    def set_paused_until(self, household_id: str, task_id: str, until: datetime | None) -> None:
        self._update(household_id, task_id, {"pausedUntil": until}, ["pausedUntil"])
        logger.info(f"Paused {task_id} until {until.isoformat() if until else 'cleared'}")

    def set_shift(self, household_id: str, task_id: str, day_key: str, minutes: int) -> None:
        self._update(
            household_id,
            task_id,
            {"exceptionShifts": {day_key: int(minutes)}},
            [f"exceptionShifts.{_quote_segment(day_key)}"],
        )
        logger.info(f"Shifted {task_id} on {day_key} by {minutes} min")

    def update_next_occurrence(self, household_id: str, task_id: str, instant: datetime | None) -> None:
        self._update(household_id, task_id, {"nextOccurrenceAt": instant}, ["nextOccurrenceAt"])


def merge_task_results(*result_sets: list[Task]) -> list[Task]:
    """
    Merge task lists by id, preferring the earlier effective instant.

    Output is sorted by effective instant; ties keep first-seen order.
    """
    merged: dict[str, Task] = {}
    for tasks in result_sets:
        for task in tasks:
            existing = merged.get(task.id)
            if existing is None or _eff_key(task) < _eff_key(existing):
                merged[task.id] = task
    return sorted(merged.values(), key=_eff_key)


def _eff_key(task: Task) -> float:
    eff = task.effective_instant
    return eff.timestamp() if eff else float("inf")
