from typing import Callable, Optional
from fastapi import Depends, Header, HTTPException, status

from roomrent.services.backend_client import BackendClient
from roomrent.services.checkout import CheckoutBridge, get_script_loader
from roomrent.services.flow_registry import FlowRegistry, get_flow_registry

BackendFactory = Callable[[str], BackendClient]


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract the tenant's bearer token. The portal does not validate it;
    the backend does, on every proxied request.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = authorization[7:].strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_backend_factory() -> BackendFactory:
    return lambda token: BackendClient(token=token)


async def get_backend_client(
    token: str = Depends(get_bearer_token),
    factory: BackendFactory = Depends(get_backend_factory),
):
    """Backend client for the duration of one request"""
    client = factory(token)
    try:
        yield client
    finally:
        await client.aclose()


async def get_registry() -> FlowRegistry:
    """Process-wide flow registry, with abandoned flows closed first"""
    registry = get_flow_registry()
    await registry.sweep()
    return registry


def get_checkout_bridge() -> CheckoutBridge:
    return CheckoutBridge(get_script_loader())


def require_role(allowed_roles: list):
    """
    Dependency factory to check the caller's role, as forwarded by the
    authentication layer in the X-User-Role header.
    Usage: Depends(require_role(["admin"]))
    """
    def role_checker(
        token: str = Depends(get_bearer_token),
        x_user_role: Optional[str] = Header(None),
    ) -> str:
        if (x_user_role or "").lower() not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join(allowed_roles)}"
            )
        return token
    return role_checker
