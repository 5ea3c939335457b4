import logging
from typing import Optional

from backend import BackendAuth, BackendError, SupabaseClient
from config import EPISODES_TABLE
from models import Episode, episode_from_row, episode_to_row

logger = logging.getLogger(__name__)


class StoreError(Exception):
    pass


class RecordStore:
    """CRUD for episode rows. Row visibility is enforced by the backend's policies."""

    def __init__(self, client: SupabaseClient, auth: BackendAuth, table: str = EPISODES_TABLE):
        self.client = client
        self.auth = auth
        self.path = f"/rest/v1/{table}"

    def _token(self) -> str:
        token = self.auth.access_token()
        if not token:
            raise StoreError("User not logged in")
        return token

    def _call(self, method: str, params=None, json_body=None, prefer=None):
        token = self._token()
        try:
            return self.client.request(
                method, self.path, params=params, json_body=json_body, token=token, prefer=prefer
            )
        except BackendError as exc:
            raise StoreError(exc.message) from exc

    def _select(self, params: dict) -> list[Episode]:
        resp = self._call("GET", params={"select": "*", **params})
        return [episode_from_row(row) for row in resp.json()]

    def create(self, episode: Episode):
        user_id = self.auth.current_user_id()
        if not user_id:
            raise StoreError("User not logged in")
        self._call("POST", json_body=episode_to_row(episode, user_id), prefer="return=minimal")

    def update(self, episode: Episode):
        user_id = self.auth.current_user_id()
        if not user_id:
            raise StoreError("User not logged in")
        self._call(
            "PATCH",
            params={"id": f"eq.{episode.id}"},
            json_body=episode_to_row(episode, user_id),
            prefer="return=minimal",
        )

    def delete(self, episode_id: str):
        self._call("DELETE", params={"id": f"eq.{episode_id}"})

    def list_all(self) -> list[Episode]:
        return self._select({"order": "started_at.desc"})

    def find_open_episode(self) -> Optional[Episode]:
        rows = self._select({"ended_at": "is.null", "order": "started_at.desc", "limit": "1"})
        return rows[0] if rows else None

    def get(self, episode_id: str) -> Optional[Episode]:
        rows = self._select({"id": f"eq.{episode_id}", "limit": "1"})
        return rows[0] if rows else None
