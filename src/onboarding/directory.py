"""Microsoft Graph directory access for identity objects.

The reconciler only needs two narrow capabilities:

- SoftDeleteDirectory: find and restore soft-deleted objects. Entra ID keeps
  deleted applications and service principals for 30 days; they must be
  restored before Terraform can manage them again, and the two are
  restored independently.
- IdentityDirectory: locate live objects by natural key.

GraphDirectory implements both against Graph v1.0. Lookups return None
for "not found" and raise DirectoryError when the lookup itself failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

DELETED_APPLICATIONS = "microsoft.graph.application"
DELETED_SERVICE_PRINCIPALS = "microsoft.graph.servicePrincipal"


class DirectoryError(Exception):
    """Raised when a directory call fails (as opposed to finding nothing)."""

    pass


@dataclass(frozen=True)
class DirectoryObject:
    """Identity object reference: directory object id plus application id."""

    object_id: str
    app_id: str = ""
    display_name: str = ""


class SoftDeleteDirectory(Protocol):
    def find_deleted_application(self, display_name: str) -> DirectoryObject | None: ...

    def find_deleted_service_principal(self, app_id: str) -> DirectoryObject | None: ...

    def restore(self, object_id: str) -> None: ...


class IdentityDirectory(Protocol):
    def find_application(self, display_name: str) -> DirectoryObject | None: ...

    def find_service_principal(self, app_id: str) -> DirectoryObject | None: ...

    def find_federated_credential(self, app_object_id: str, name: str) -> str | None: ...


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


def _to_object(item: dict[str, Any]) -> DirectoryObject:
    return DirectoryObject(
        object_id=item["id"],
        app_id=item.get("appId") or "",
        display_name=item.get("displayName") or "",
    )


class GraphDirectory:
    """Graph v1.0 client authenticated with the operator's CLI session."""

    def __init__(
        self,
        credential: TokenCredential,
        client: httpx.Client,
        base_url: str = GRAPH_BASE_URL,
    ) -> None:
        self._credential = credential
        self._client = client
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        try:
            token = self._credential.get_token(GRAPH_SCOPE).token
        except ClientAuthenticationError as e:
            raise DirectoryError(f"Cannot acquire Graph token: {e.message}") from e
        return {"Authorization": f"Bearer {token}"}

    def _request(
        self, method: str, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any] | None:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.request(method, url, params=params, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DirectoryError(
                f"Graph {method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise DirectoryError(f"Graph {method} {path} failed: {e}") from e

        if not response.content:
            return None
        try:
            data = response.json()
        except ValueError as e:
            raise DirectoryError(f"Graph {method} {path} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise DirectoryError(f"Graph {method} {path} returned an unexpected body")
        return data

    def _first(self, path: str, filter_expr: str) -> DirectoryObject | None:
        data = self._request("GET", path, params={"$filter": filter_expr})
        values = (data or {}).get("value") or []
        if not values:
            return None
        if len(values) > 1:
            logger.warning(
                f"Multiple directory objects match {filter_expr}; using the first",
                extra={"path": path, "count": len(values)},
            )
        return _to_object(values[0])

    # SoftDeleteDirectory

    def find_deleted_application(self, display_name: str) -> DirectoryObject | None:
        return self._first(
            f"/directory/deletedItems/{DELETED_APPLICATIONS}",
            f"displayName eq {odata_quote(display_name)}",
        )

    def find_deleted_service_principal(self, app_id: str) -> DirectoryObject | None:
        return self._first(
            f"/directory/deletedItems/{DELETED_SERVICE_PRINCIPALS}",
            f"appId eq {odata_quote(app_id)}",
        )

    def restore(self, object_id: str) -> None:
        self._request("POST", f"/directory/deletedItems/{object_id}/restore")
        logger.info("Restored soft-deleted directory object", extra={"object_id": object_id})

    # IdentityDirectory

    def find_application(self, display_name: str) -> DirectoryObject | None:
        return self._first("/applications", f"displayName eq {odata_quote(display_name)}")

    def find_service_principal(self, app_id: str) -> DirectoryObject | None:
        return self._first("/servicePrincipals", f"appId eq {odata_quote(app_id)}")

    def find_federated_credential(self, app_object_id: str, name: str) -> str | None:
        data = self._request("GET", f"/applications/{app_object_id}/federatedIdentityCredentials")
        for item in (data or {}).get("value") or []:
            if item.get("name") == name:
                return item["id"]
        return None
