"""
Backend REST client: template lookup and letter persistence.
"""

from typing import Any, Dict, List, Mapping

import httpx

from letter_stream.application.ports import (
    CredentialProviderPort,
    DocumentStorePort,
    TemplateSourcePort,
)
from letter_stream.domain.exceptions import (
    AuthMissingError,
    TemplateNotFoundError,
    TransportError,
)
from letter_stream.infra.config.logging_config import get_logger


class BackendApiClient(TemplateSourcePort, DocumentStorePort):
    """
    Thin adapter over the backend's JSON API.

    Responses use the backend's envelope (``{"success": ..., "letter": ...}``);
    a bare object is accepted as well. Persistence errors surface as
    ``TransportError`` and are turned into persistence failures by the
    session manager.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: CredentialProviderPort,
        templates_path: str = "/api/prompts",
        documents_path: str = "/api/letters",
    ):
        self._client = client
        self._credentials = credentials
        self._templates_path = templates_path.rstrip("/")
        self._documents_path = documents_path.rstrip("/")
        self._log = get_logger("infra.backend")

    async def fetch_template(self, template_id: str) -> Mapping[str, Any]:
        response = await self._request("GET", f"{self._templates_path}/{template_id}")
        if response.status_code == 404:
            raise TemplateNotFoundError(template_id)
        body = self._json_body(response)
        # Shape problems are reported by TemplateRecord validation
        return body.get("prompt", body)

    async def list_templates(self) -> List[Mapping[str, Any]]:
        response = await self._request("GET", self._templates_path)
        body = self._decode(response)
        if isinstance(body, dict):
            body = body.get("prompts", body.get("templates"))
        if not isinstance(body, list):
            raise TransportError("Backend returned an unexpected template listing")
        return [item for item in body if isinstance(item, Mapping)]

    async def create_document(self, content: str, metadata: Dict[str, Any]) -> str:
        response = await self._request(
            "POST", self._documents_path, json={**metadata, "content": content}
        )
        body = self._json_body(response)
        letter = body.get("letter", body)
        document_id = letter.get("id") if isinstance(letter, Mapping) else None
        if document_id is None:
            raise TransportError(body.get("error") or "Failed to create letter")
        self._log.info("backend.document.created", document_id=str(document_id))
        return str(document_id)

    async def update_document(
        self, document_id: str, content: str, metadata: Dict[str, Any]
    ) -> None:
        response = await self._request(
            "PUT",
            f"{self._documents_path}/{document_id}",
            json={**metadata, "content": content},
        )
        body = self._json_body(response)
        if body.get("success") is False:
            raise TransportError(body.get("error") or "Failed to update letter")
        self._log.info("backend.document.updated", document_id=document_id)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = await self._credentials.get_token()
        if not token or not token.strip():
            raise AuthMissingError()

        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            self._log.error("backend.request.failed", method=method, path=path, error=str(e))
            raise TransportError(str(e) or e.__class__.__name__) from e
        return response

    def _decode(self, response: httpx.Response) -> Any:
        if response.status_code >= 400:
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Backend returned a non-JSON body") from e

    def _json_body(self, response: httpx.Response) -> Dict[str, Any]:
        body = self._decode(response)
        if not isinstance(body, dict):
            raise TransportError("Backend returned an unexpected body")
        return body
