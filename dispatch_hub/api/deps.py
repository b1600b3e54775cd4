from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dispatch_hub.core.db import get_session_factory
from dispatch_hub.services.credential_vault import CredentialVault
from dispatch_hub.services.dispatch import DispatchOrchestrator


def get_vault() -> CredentialVault:
    return CredentialVault()


def get_orchestrator(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    vault: CredentialVault = Depends(get_vault),
) -> DispatchOrchestrator:
    state = request.app.state
    return DispatchOrchestrator(
        session_factory=session_factory,
        orders=state.order_lookup,
        vault=vault,
        adapters=state.carrier_adapters,
        locks=state.dispatch_locks,
    )
