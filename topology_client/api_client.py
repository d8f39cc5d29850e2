# topology_client/api_client.py
import requests

from typing import Any, Dict, List, Optional

from topology.models import MutationResult, Snapshot


class APIClient:
    """
    HTTP side of the topology server: the snapshot source (agent, link and
    custom node lists) and the mutation gateway. Mutations never raise; transport and
    server rejections come back as error results.
    """
    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    # ---------- snapshot source ----------
    def fetch_agents(self) -> List[Dict[str, Any]]:
        r = self.http.get(f"{self.base_url}/agents", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def fetch_links(self) -> List[Dict[str, Any]]:
        r = self.http.get(f"{self.base_url}/links", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def fetch_custom_nodes(self) -> List[Dict[str, Any]]:
        r = self.http.get(f"{self.base_url}/custom-nodes", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def fetch_snapshot(self) -> Snapshot:
        return Snapshot.from_payload({
            "agents": self.fetch_agents(),
            "links": self.fetch_links(),
            "custom_nodes": self.fetch_custom_nodes(),
        })

    # ---------- mutation gateway ----------
    def set_visibility(self, agent_id: str, visible: bool) -> MutationResult:
        return self._mutate("PUT", f"/agents/{agent_id}/visibility", {"visible": visible})

    def set_locked(self, agent_id: str, locked: bool) -> MutationResult:
        return self._mutate("PUT", f"/agents/{agent_id}/lock", {"locked": locked})

    def set_description(self, agent_id: str, description: str) -> MutationResult:
        return self._mutate("PUT", f"/agents/{agent_id}/description", {"description": description})

    def create_link(self, source_id: str, destination_id: str, label: Optional[str] = None) -> MutationResult:
        return self._mutate("POST", "/links", {"source_id": source_id, "destination_id": destination_id, "label": label})

    def end_link(self, link_id: str) -> MutationResult:
        return self._mutate("DELETE", f"/links/{link_id}")

    def set_parent(self, agent_id: str, parent_id: str, label: Optional[str] = None) -> MutationResult:
        return self._mutate("PUT", f"/agents/{agent_id}/parent", {"parent_id": parent_id, "label": label})

    def disconnect_parent(self, agent_id: str) -> MutationResult:
        return self._mutate("DELETE", f"/agents/{agent_id}/parent")

    def create_custom_node(self, hostname: str, **fields) -> MutationResult:
        return self._mutate("POST", "/custom-nodes", {"hostname": hostname, **fields})

    def update_custom_node(self, node_id: str, **fields) -> MutationResult:
        return self._mutate("PUT", f"/custom-nodes/{node_id}", fields)

    def delete_custom_node(self, node_id: str) -> MutationResult:
        return self._mutate("DELETE", f"/custom-nodes/{node_id}")

    def set_custom_parent(self, node_id: str, parent_id: str, label: Optional[str] = None) -> MutationResult:
        return self._mutate("PUT", f"/custom-nodes/{node_id}/parent", {"parent_id": parent_id, "label": label})

    def disconnect_custom_parent(self, node_id: str) -> MutationResult:
        return self._mutate("DELETE", f"/custom-nodes/{node_id}/parent")

    # ---------- internals ----------
    @staticmethod
    def _json(r) -> Any:
        try:
            return r.json()
        except ValueError:
            return None

    def _mutate(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> MutationResult:
        try:
            r = self.http.request(method, f"{self.base_url}{path}", json=body, timeout=self.timeout)
        except requests.RequestException as e:
            return MutationResult.failure(f"request failed: {e}")
        data = self._json(r)
        if not isinstance(data, dict):
            data = {}
        if not r.ok:
            return MutationResult.failure(str(data.get("detail") or r.text or f"HTTP {r.status_code}"))
        if data.get("status") == "error":
            return MutationResult.failure(data.get("error") or "Mutation failed")
        return MutationResult.success(link_id=data.get("link_id"), node_id=data.get("node_id"))
