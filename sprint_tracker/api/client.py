"""Azure DevOps work item tracking client."""

import logging
from collections.abc import Iterable, Sequence
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from sprint_tracker.api.models import RemoteWorkItem
from sprint_tracker.config.auth import get_verify_ssl, resolve_pat
from sprint_tracker.config.settings import Settings
from sprint_tracker.config.workflow import (
    CLOSED_STATE,
    FIELD_COMPLETED_WORK,
    FIELD_REMAINING_WORK,
    FIELD_STATE,
    FIELD_TITLE,
    FIELD_TYPE,
    PARENT_RELATION,
    WorkItemType,
)

logger = logging.getLogger(__name__)

API_VERSION = "7.0"

# Maximum number of ids accepted by the work items batch endpoint
MAX_IDS_PER_REQUEST = 200


class AzureDevOpsError(Exception):
    """Raised when an Azure DevOps API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def parse_parent_id(relations: list[dict[str, Any]] | None) -> int | None:
    """Extract the parent id from a work item's relations, if any."""
    for relation in relations or []:
        attributes = relation.get("attributes") or {}
        if relation.get("rel") != PARENT_RELATION and attributes.get("name") != "Parent":
            continue
        url = relation.get("url") or ""
        raw_id = url.rstrip("/").rsplit("/", 1)[-1]
        try:
            return int(raw_id)
        except ValueError:
            logger.warning("Ignoring malformed parent reference: %s", url)
            return None
    return None


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_work_item(item: dict[str, Any]) -> RemoteWorkItem:
    """Convert a work item payload to a flat record.

    Raises:
        AzureDevOpsError: If the payload is not a work item
    """
    try:
        fields = item.get("fields", {})
        return RemoteWorkItem(
            id=item["id"],
            type=WorkItemType.from_ado_name(fields.get(FIELD_TYPE)),
            title=fields.get(FIELD_TITLE, ""),
            state=fields.get(FIELD_STATE, ""),
            completed_work=_as_float(fields.get(FIELD_COMPLETED_WORK)),
            remaining_work=_as_float(fields.get(FIELD_REMAINING_WORK)),
            parent_id=parse_parent_id(item.get("relations")),
        )
    except (AttributeError, KeyError, TypeError, ValidationError) as e:
        raise AzureDevOpsError(f"Malformed work item in response: {e!r}") from e


def build_sprint_query(
    project: str,
    team: str,
    assignee: str = "@Me",
    exclude_states: Sequence[str] = (CLOSED_STATE,),
) -> str:
    """Build the WIQL query for the current iteration's work items.

    Args:
        project: Project name
        team: Team whose current iteration is used
        assignee: '@Me' or a user's display name / email
        exclude_states: States to leave out
    """
    conditions = [
        f"[System.IterationPath] = @currentIteration('[{project}]\\{team}')",
        f"[System.AssignedTo] = {assignee if assignee.startswith('@') else _quote_wiql(assignee)}",
    ]
    if exclude_states:
        states = ", ".join(_quote_wiql(state) for state in exclude_states)
        conditions.append(f"[System.State] NOT IN ({states})")
    return "Select [System.Id] From WorkItems Where " + " and ".join(conditions)


def _quote_wiql(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _chunks(ids: Sequence[int], size: int) -> Iterable[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


class AzureDevOpsClient:
    """Async client for the Azure DevOps work item tracking REST API."""

    def __init__(
        self,
        services_url: str,
        project: str,
        team: str,
        pat: str,
        timeout: float = 30.0,
        verify_ssl: bool | None = None,
    ):
        """Initialize the client.

        Args:
            services_url: Organization URL, e.g. 'https://dev.azure.com/acme'
            project: Project name
            team: Team name
            pat: Personal access token
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certs (defaults to SPRINT_TRACKER_VERIFY_SSL env var)
        """
        self.services_url = services_url.rstrip("/")
        self.project = project
        self.team = team
        self.pat = pat
        self.timeout = timeout
        self.verify_ssl = verify_ssl if verify_ssl is not None else get_verify_ssl()
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AzureDevOpsClient":
        """Create a client for the connection described by ``settings``."""
        return cls(
            services_url=settings.services_url,
            project=settings.project,
            team=settings.team,
            pat=resolve_pat(settings),
        )

    async def __aenter__(self) -> "AzureDevOpsClient":
        """Enter async context."""
        self._client = httpx.AsyncClient(
            base_url=self.services_url,
            auth=httpx.BasicAuth("", self.pat),
            headers={"Accept": "application/json"},
            timeout=self.timeout,
            verify=self.verify_ssl,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not in context."""
        if self._client is None:
            raise RuntimeError("AzureDevOpsClient must be used as async context manager")
        return self._client

    @property
    def _project_path(self) -> str:
        return f"/{quote(self.project, safe='')}"

    @property
    def _team_path(self) -> str:
        return f"{self._project_path}/{quote(self.team, safe='')}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body."""
        params = {"api-version": API_VERSION, **kwargs.pop("params", {})}
        try:
            response = await self.client.request(method, url, params=params, **kwargs)
        except httpx.HTTPError as e:
            raise AzureDevOpsError(f"Request to Azure DevOps failed: {e}") from e
        self._check_response(response)
        try:
            return response.json()
        except ValueError as e:
            # A bad token gets a 203 sign-in page instead of a 401
            raise AzureDevOpsError(
                f"Unexpected non-JSON response (status {response.status_code}). Check your personal access token.",
                response.status_code,
            ) from e

    def _check_response(self, response: httpx.Response) -> None:
        """Check response for errors and raise if needed."""
        if response.status_code in (401, 403):
            raise AzureDevOpsError(
                "Authentication failed. Check your personal access token.", response.status_code
            )
        if response.status_code == 404:
            raise AzureDevOpsError("Resource not found. Check the URL, project and team.", 404)
        if response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("message", str(error_data))
            except ValueError:
                message = response.text
            raise AzureDevOpsError(f"API error: {message}", response.status_code)

    async def query_sprint_work_item_ids(
        self,
        assignee: str = "@Me",
        exclude_states: Sequence[str] = (CLOSED_STATE,),
    ) -> list[int]:
        """Run the current-iteration WIQL query and return the matching ids."""
        query = build_sprint_query(self.project, self.team, assignee, exclude_states)
        logger.debug("Built query: %s", query)

        data = await self._request("POST", f"{self._team_path}/_apis/wit/wiql", json={"query": query})
        try:
            ids = [int(item["id"]) for item in data.get("workItems", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise AzureDevOpsError(f"Malformed query result: {e!r}") from e
        logger.debug("Found %d work items", len(ids))
        return ids

    async def fetch_items_with_relations(self, ids: Sequence[int]) -> list[RemoteWorkItem]:
        """Fetch work items with their relations.

        Ids that no longer exist or are not visible are left out.
        """
        items: list[RemoteWorkItem] = []
        for chunk in _chunks(list(ids), MAX_IDS_PER_REQUEST):
            data = await self._request(
                "GET",
                f"{self._project_path}/_apis/wit/workitems",
                params={
                    "ids": ",".join(str(i) for i in chunk),
                    "$expand": "relations",
                    "errorPolicy": "omit",
                },
            )
            if not isinstance(data, dict):
                raise AzureDevOpsError(f"Malformed work items response: {data!r:.200}")
            items.extend(parse_work_item(item) for item in data.get("value", []) if item)
        return items

    async def list_sprint_work_items(
        self,
        assignee: str = "@Me",
        exclude_states: Sequence[str] = (CLOSED_STATE,),
    ) -> list[RemoteWorkItem]:
        """Get the current sprint's work items along with their parents.

        Returns:
            Flat list of sprint items followed by any parents not already in it
        """
        ids = await self.query_sprint_work_item_ids(assignee, exclude_states)
        if not ids:
            return []

        items = await self.fetch_items_with_relations(ids)

        known = {item.id for item in items}
        parent_ids = sorted({item.parent_id for item in items if item.parent_id} - known)
        parents = await self.fetch_items_with_relations(parent_ids) if parent_ids else []
        logger.debug("Found %d parent items", len(parents))

        return items + parents

    async def update_work_item(
        self,
        work_item_id: int,
        remaining_work: float,
        completed_work: float,
        state: str | None = None,
    ) -> RemoteWorkItem:
        """Update the scheduling fields (and optionally the state) of a work item.

        Args:
            work_item_id: The work item id
            remaining_work: New remaining work
            completed_work: New completed work
            state: New state, only sent when given

        Returns:
            The updated work item
        """
        fields: dict[str, Any] = {
            FIELD_REMAINING_WORK: remaining_work,
            FIELD_COMPLETED_WORK: completed_work,
        }
        if state is not None:
            fields[FIELD_STATE] = state

        logger.info(
            "Updating work item %d with CompletedWork = %s and RemainingWork = %s",
            work_item_id,
            completed_work,
            remaining_work,
        )
        patch = [{"op": "add", "path": f"/fields/{name}", "value": value} for name, value in fields.items()]
        data = await self._request(
            "PATCH",
            f"{self._project_path}/_apis/wit/workitems/{work_item_id}",
            json=patch,
            headers={"Content-Type": "application/json-patch+json"},
        )
        return parse_work_item(data)
