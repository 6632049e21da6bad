"""
Catalog abstraction over Shopify metaobjects, plus an in-memory test double.

Shopify represents a metaobject as an ordered list of `{key, value}` string
pairs. Records are flattened into a plain mapping on read and rebuilt into
the list form on write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import requests

from relay.errors import CatalogError, UpstreamAuthError, UpstreamError

if TYPE_CHECKING:
    from relay.credentials import CredentialCache

logger = logging.getLogger(__name__)

ENTRY_TYPE = "beer_leaderboard_entry"

CREATE_MUTATION = """
mutation CreateMetaobject($metaobject: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $metaobject) {
    metaobject {
      id
      handle
    }
    userErrors {
      field
      message
    }
  }
}
"""

LIST_QUERY = """
query ListMetaobjects($type: String!, $first: Int!) {
  metaobjects(type: $type, first: $first) {
    edges {
      node {
        id
        handle
        fields {
          key
          value
        }
      }
    }
  }
}
"""

UPDATE_MUTATION = """
mutation UpdateMetaobject($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject {
      id
      handle
      fields {
        key
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""


def parse_flag(value: Optional[str]) -> bool:
    return value == "true"


def format_flag(value: bool) -> str:
    return "true" if value else "false"


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return format_flag(value)
    return str(value)


def flatten_fields(pairs: Iterable[Mapping[str, Any]]) -> Dict[str, Optional[str]]:
    return {pair["key"]: pair.get("value") for pair in pairs}


def to_field_list(fields: Mapping[str, Any]) -> List[Dict[str, str]]:
    return [
        {"key": key, "value": format_value(value)}
        for key, value in fields.items()
        if value is not None
    ]


@dataclass
class CatalogRecord:
    """One metaobject with its fields flattened."""

    id: str
    handle: str
    fields: Dict[str, Optional[str]] = field(default_factory=dict)
    verified: bool = field(init=False)

    def __post_init__(self):
        self.verified = parse_flag(self.fields.get("verified"))

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> "CatalogRecord":
        return cls(
            id=node["id"],
            handle=node.get("handle", ""),
            fields=flatten_fields(node.get("fields") or []),
        )

    def as_entry(self) -> dict:
        """Flat shape used by the public leaderboards."""
        return {"id": self.id, "handle": self.handle, **self.fields}

    def as_submission(self) -> dict:
        """Nested shape used by the admin dashboard."""
        return {"id": self.id, "handle": self.handle, "fields": dict(self.fields)}


@dataclass(frozen=True)
class CreatedRecord:
    id: str
    handle: str

    def as_dict(self) -> dict:
        return {"id": self.id, "handle": self.handle}


class CatalogClient(Protocol):
    """Interface for metaobject access."""

    def create(self, object_type: str, fields: Mapping[str, Any]) -> CreatedRecord:
        ...

    def query(self, object_type: str, page_size: int) -> List[CatalogRecord]:
        ...

    def update(self, record_id: str, fields: Mapping[str, Any]) -> CatalogRecord:
        ...


def exchange_client_credentials(
    store_domain: str,
    client_id: str,
    client_secret: str,
    http: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> Tuple[str, Optional[int]]:
    """
    Obtain an admin API access token through the client-credentials grant.

    Returns:
        The access token and its lifetime in seconds (None when omitted).

    Raises:
        UpstreamAuthError: If the token endpoint answers with a non-2xx status.
    """
    http = http or requests.Session()
    url = f"https://{store_domain}/admin/oauth/access_token"
    try:
        response = http.post(
            url,
            data={
                "grant_type": "client_credentials",
                "client_id": client_id,
                "client_secret": client_secret,
            },
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise UpstreamAuthError("Failed to get Shopify access token") from exc
    if not response.ok:
        raise UpstreamAuthError(
            f"Failed to get Shopify access token: {response.status_code}",
            upstream_status=response.status_code,
        )
    data = response.json()
    return data["access_token"], data.get("expires_in")


def _raise_for_user_errors(payload: Mapping[str, Any], operation: str) -> None:
    user_errors = (payload or {}).get("userErrors") or []
    if user_errors:
        raise CatalogError(f"{operation} rejected", details=user_errors)


@dataclass
class ShopifyCatalogClient:
    """Metaobject client for the Shopify Admin GraphQL API."""

    credentials: "CredentialCache"
    store_domain: str
    api_version: str = "2024-01"
    http: requests.Session = field(default_factory=requests.Session)
    timeout: float = 30.0

    @property
    def endpoint(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/graphql.json"

    def execute(self, query: str, variables: Optional[dict] = None) -> dict:
        """Run a GraphQL document and return its `data` object."""
        token = self.credentials.get_catalog_token()
        try:
            response = self.http.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": token,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError("Catalog request failed") from exc
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Catalog returned a non-JSON response: {response.status_code}"
            ) from exc
        if body.get("errors"):
            raise CatalogError("Catalog query failed", details=body["errors"])
        if not response.ok:
            raise UpstreamError(f"Catalog request failed: {response.status_code}")
        return body.get("data") or {}

    def create(self, object_type: str, fields: Mapping[str, Any]) -> CreatedRecord:
        data = self.execute(
            CREATE_MUTATION,
            {"metaobject": {"type": object_type, "fields": to_field_list(fields)}},
        )
        payload = data.get("metaobjectCreate") or {}
        _raise_for_user_errors(payload, "metaobjectCreate")
        node = payload.get("metaobject") or {}
        return CreatedRecord(id=node["id"], handle=node.get("handle", ""))

    def query(self, object_type: str, page_size: int) -> List[CatalogRecord]:
        # Single page only; records past `page_size` are not reachable.
        data = self.execute(LIST_QUERY, {"type": object_type, "first": page_size})
        edges = (data.get("metaobjects") or {}).get("edges") or []
        return [CatalogRecord.from_node(edge["node"]) for edge in edges]

    def update(self, record_id: str, fields: Mapping[str, Any]) -> CatalogRecord:
        data = self.execute(
            UPDATE_MUTATION,
            {"id": record_id, "metaobject": {"fields": to_field_list(fields)}},
        )
        payload = data.get("metaobjectUpdate") or {}
        _raise_for_user_errors(payload, "metaobjectUpdate")
        return CatalogRecord.from_node(payload["metaobject"])


class InMemoryCatalogClient:
    """Simple in-memory metaobject store for development and tests."""

    def __init__(self):
        self.records: Dict[str, List[CatalogRecord]] = {}
        self.updates: List[Tuple[str, Dict[str, str]]] = []
        self._next_id = 1

    def create(self, object_type: str, fields: Mapping[str, Any]) -> CreatedRecord:
        record_id = f"gid://shopify/Metaobject/{self._next_id}"
        handle = f"{object_type.replace('_', '-')}-{self._next_id}"
        self._next_id += 1
        values = {pair["key"]: pair["value"] for pair in to_field_list(fields)}
        self.records.setdefault(object_type, []).append(
            CatalogRecord(id=record_id, handle=handle, fields=values)
        )
        return CreatedRecord(id=record_id, handle=handle)

    def query(self, object_type: str, page_size: int) -> List[CatalogRecord]:
        return [
            CatalogRecord(id=r.id, handle=r.handle, fields=dict(r.fields))
            for r in self.records.get(object_type, [])[:page_size]
        ]

    def update(self, record_id: str, fields: Mapping[str, Any]) -> CatalogRecord:
        values = {pair["key"]: pair["value"] for pair in to_field_list(fields)}
        self.updates.append((record_id, values))
        for records in self.records.values():
            for index, record in enumerate(records):
                if record.id == record_id:
                    updated = CatalogRecord(
                        id=record.id,
                        handle=record.handle,
                        fields={**record.fields, **values},
                    )
                    records[index] = updated
                    return updated
        raise CatalogError(
            "metaobjectUpdate rejected",
            details=[{"field": ["id"], "message": "Metaobject not found"}],
        )

    def reset(self) -> None:
        self.records.clear()
        self.updates.clear()
        self._next_id = 1
