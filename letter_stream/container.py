"""Dependency container wiring the generation engine."""

from typing import Optional

import httpx

from letter_stream.application.ports import SessionObserverPort
from letter_stream.application.services.session_manager import (
    GenerationSessionManager,
)
from letter_stream.application.services.template_cache import (
    TemplateCache,
    TemplateSourceMode,
)
from letter_stream.application.services.token_accumulator import ProgressPolicy
from letter_stream.infra.auth.token_provider import StaticTokenProvider
from letter_stream.infra.config.logging_config import get_logger, setup_logging
from letter_stream.infra.config.settings import Settings, get_settings
from letter_stream.infra.http.backend_client import BackendApiClient
from letter_stream.infra.http.stream_transport import HttpStreamTransport
from letter_stream.infra.metrics import configure_metrics
from letter_stream.infra.prompts.static_catalog import StaticTemplateSource


class Container:
    """Builds each component once, on first use."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        observer: Optional[SessionObserverPort] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._observer = observer
        self._http_client = http_client
        self._owns_client = http_client is None
        self._credentials: Optional[StaticTokenProvider] = None
        self._backend: Optional[BackendApiClient] = None
        self._template_cache: Optional[TemplateCache] = None
        self._transport: Optional[HttpStreamTransport] = None
        self._session_manager: Optional[GenerationSessionManager] = None

    def configure(self) -> None:
        """Apply logging and metrics settings."""
        setup_logging(self.settings.log_level, self.settings.log_format)
        configure_metrics(self.settings.metrics_enabled)

    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.settings.backend_base_url,
                # Streams may stay open for as long as generation takes
                timeout=httpx.Timeout(None, connect=self.settings.http_connect_timeout),
            )
        return self._http_client

    def credentials(self) -> StaticTokenProvider:
        if self._credentials is None:
            self._credentials = StaticTokenProvider(self.settings.api_token)
        return self._credentials

    def backend(self) -> BackendApiClient:
        if self._backend is None:
            self._backend = BackendApiClient(
                client=self.http_client(),
                credentials=self.credentials(),
                templates_path=self.settings.templates_path,
                documents_path=self.settings.documents_path,
            )
        return self._backend

    def template_cache(self) -> TemplateCache:
        if self._template_cache is None:
            mode = TemplateSourceMode(self.settings.template_source_mode)
            if mode is TemplateSourceMode.REMOTE:
                self._template_cache = TemplateCache(mode, remote_source=self.backend())
            else:
                self._template_cache = TemplateCache(
                    mode, static_source=StaticTemplateSource()
                )
        return self._template_cache

    def transport(self) -> HttpStreamTransport:
        if self._transport is None:
            self._transport = HttpStreamTransport(self.http_client(), self.credentials())
        return self._transport

    def session_manager(self) -> GenerationSessionManager:
        if self._session_manager is None:
            settings = self.settings
            self._session_manager = GenerationSessionManager(
                template_cache=self.template_cache(),
                transport=self.transport(),
                document_store=self.backend(),
                stream_endpoint=settings.stream_path,
                observer=self._observer,
                model=settings.generation_model,
                min_result_length=settings.min_result_length,
                progress_policy=ProgressPolicy(
                    source_variable=settings.progress_source_variable,
                    length_factor=settings.progress_length_factor,
                    floor_length=settings.progress_floor_length,
                    cap=settings.progress_cap,
                ),
            )
        return self._session_manager

    async def aclose(self) -> None:
        """Stop sessions, drop cached templates and close the HTTP client."""
        if self._session_manager is not None:
            await self._session_manager.shutdown()
        if self._template_cache is not None:
            await self._template_cache.teardown()
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        get_logger("container").info("container.closed")
