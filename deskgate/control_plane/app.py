from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from loguru import logger

from deskgate.control_plane.approvals import ApprovalService
from deskgate.control_plane.audit import AuditLog
from deskgate.control_plane.cors import install_gateway_middleware
from deskgate.control_plane.errors import install_error_handlers
from deskgate.control_plane.events import ReloadEventStore
from deskgate.control_plane.log import setup_logging
from deskgate.control_plane.managers.scheduler import JobScheduler
from deskgate.control_plane.models.audit import now_ms
from deskgate.control_plane.proxy.engine import EngineBridge
from deskgate.control_plane.proxy.providers import ProviderProxy
from deskgate.control_plane.registry import WorkspaceRegistry
from deskgate.control_plane.settings import GatewaySettings, get_settings
from deskgate.control_plane.store.config import ConfigStore
from deskgate.control_plane.store.providers import ProviderStore

# Upstream chat streams can idle between chunks for a long time.
UPSTREAM_TIMEOUT = httpx.Timeout(30.0, read=None)


def init_state(app: FastAPI, settings: GatewaySettings, client: httpx.AsyncClient) -> None:
    """Attach every shared service to ``app.state``.

    Tests call this directly with a mock-transport client instead of running
    the lifespan.
    """
    app.state.settings = settings
    app.state.registry = WorkspaceRegistry.from_settings(settings)
    app.state.config_store = ConfigStore()
    app.state.audit = AuditLog()
    app.state.reload_events = ReloadEventStore()
    app.state.approvals = ApprovalService(settings.approval_mode, settings.approval_timeout_ms)
    app.state.provider_store = ProviderStore(settings.provider_config_dir)
    app.state.provider_proxy = ProviderProxy(
        app.state.provider_store,
        client,
        poll_interval=settings.image_poll_interval,
        poll_max_attempts=settings.image_poll_max_attempts,
    )
    app.state.engine = EngineBridge(client)
    app.state.scheduler = JobScheduler()
    app.state.http_client = client
    app.state.started_at = now_ms()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    if settings.token_source == "generated":
        logger.warning("No DESKGATE_TOKEN set -- generated client token: {}", settings.token)
    if settings.host_token_source == "generated":
        logger.warning("No DESKGATE_HOST_TOKEN set -- generated host token: {}", settings.host_token)

    init_state(_app, settings, httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT))
    registry: WorkspaceRegistry = _app.state.registry

    logger.info("deskgate starting (host={}, port={})", settings.host, settings.port)
    logger.info(
        "Approvals: mode={} timeout={}ms, read_only={}",
        settings.approval_mode,
        settings.approval_timeout_ms,
        settings.read_only,
    )
    if len(registry) == 0:
        logger.warning("No workspaces configured -- workspace routes will return 404")
    for workspace in registry.all():
        logger.info("Workspace: {} -> {}", workspace.id, workspace.path)

    yield

    # -- Shutdown --------------------------------------------------------------
    denied = _app.state.approvals.deny_all()
    if denied:
        logger.info("Denied {} pending approvals on shutdown", denied)

    await _app.state.http_client.aclose()
    logger.info("deskgate stopped")


app = FastAPI(title="deskgate control plane", lifespan=lifespan)
install_error_handlers(app)
install_gateway_middleware(app)

# -- Routers -----------------------------------------------------------------
from deskgate.control_plane.routers.approvals import router as approvals_router  # noqa: E402
from deskgate.control_plane.routers.engine import router as engine_router  # noqa: E402
from deskgate.control_plane.routers.extensions import router as extensions_router  # noqa: E402
from deskgate.control_plane.routers.providers import router as providers_router  # noqa: E402
from deskgate.control_plane.routers.scheduler import router as scheduler_router  # noqa: E402
from deskgate.control_plane.routers.system import router as system_router  # noqa: E402
from deskgate.control_plane.routers.workspaces import router as workspaces_router  # noqa: E402
from deskgate.control_plane.routers.workspaces import workspace_router  # noqa: E402

app.include_router(system_router)
app.include_router(providers_router)
app.include_router(workspaces_router)
app.include_router(workspace_router)
app.include_router(extensions_router)
app.include_router(scheduler_router)
app.include_router(approvals_router)
app.include_router(engine_router)
