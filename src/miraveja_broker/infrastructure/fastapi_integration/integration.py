from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from miraveja_broker.application import Broker
from miraveja_broker.domain import ComponentKind


def broker_lifespan(broker: Broker, *service_names: str) -> Callable[[FastAPI], Any]:
    """Create a FastAPI lifespan that runs broker services alongside the app.

    The services are started in the given order when the application starts
    and stopped in reverse order when it shuts down. Without names, every
    registered service is started.

    Args:
        broker: The broker owning the services.
        *service_names: Services to run while the application is up.

    Returns:
        A lifespan callable for ``FastAPI(lifespan=...)``.

    Example:
        >>> broker = Broker(config)
        >>> app = FastAPI(lifespan=broker_lifespan(broker, "api"))
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if service_names:
            for name in service_names:
                await broker.start_service(name)
        else:
            await broker.start_all()

        app.state.broker = broker
        try:
            yield
        finally:
            if service_names:
                for name in reversed(service_names):
                    await broker.stop_service(name)
            else:
                await broker.stop_all()

    return lifespan


def create_singleton_dependency(broker: Broker, name: str) -> Callable[[], Any]:
    """Create a FastAPI Depends() callable returning a started singleton.

    Args:
        broker: The broker holding the singleton.
        name: Singleton name.

    Returns:
        A callable that FastAPI can use with Depends().

    Example:
        >>> get_db = create_singleton_dependency(broker, "db")
        >>>
        >>> @app.get("/users")
        >>> async def list_users(db=Depends(get_db)):
        ...     return await db.fetch_users()
    """

    def dependency() -> Any:
        """Return the singleton instance, failing if no service started it."""
        return broker.cache.get_instance(ComponentKind.SINGLETON, name)

    return dependency


def create_action_dependency(broker: Broker, name: str) -> Callable[[], Callable[..., Any]]:
    """Create a FastAPI Depends() callable returning a composed action.

    Local actions are requested by their full ``<service>#<action>`` name.

    Args:
        broker: The broker holding the action.
        name: Action name.

    Returns:
        A callable that FastAPI can use with Depends().

    Example:
        >>> get_create_user = create_action_dependency(broker, "createUser")
        >>>
        >>> @app.post("/users")
        >>> async def create_user(payload: dict, create=Depends(get_create_user)):
        ...     return await create(payload)
    """

    def dependency() -> Callable[..., Any]:
        """Return the composed action, failing if no service composed it."""
        return broker.cache.get_instance(ComponentKind.ACTION, name)

    return dependency


def get_request_broker(request: Request) -> Broker:
    """FastAPI dependency returning the broker attached by BrokerMiddleware."""
    if not hasattr(request.state, "broker"):
        raise RuntimeError("Request does not have a broker. Did you forget to add BrokerMiddleware?")
    return request.state.broker


class BrokerMiddleware(BaseHTTPMiddleware):
    """Middleware that exposes a broker on every request.

    The broker is accessible via ``request.state.broker``.

    Attributes:
        broker: The broker to expose.

    Example:
        >>> app = FastAPI()
        >>> app.add_middleware(BrokerMiddleware, broker=broker)
        >>>
        >>> @app.get("/health")
        >>> async def health(broker: Broker = Depends(get_request_broker)):
        ...     return {"running": broker.running_services()}
    """

    def __init__(self, app: FastAPI, broker: Broker):
        super().__init__(app)
        self.broker = broker

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request.state.broker = self.broker
        return await call_next(request)
