import logging

import httpx
from sqlmodel import Session, select

from tickethub.domain.errors import NotFoundError, UpstreamApiError
from tickethub.domain.models import IntegrationProvider, utcnow
from tickethub.domain.schemas import ConnectionTestResult, ProviderCreate, ProviderRead
from tickethub.integrations import registry

logger = logging.getLogger("provider_service")

MASK = "••••••••"


def get_provider(session: Session, provider_id: int) -> IntegrationProvider:
    provider = session.get(IntegrationProvider, provider_id)
    if not provider:
        raise NotFoundError("Provider", provider_id)
    return provider


def to_read(provider: IntegrationProvider) -> ProviderRead:
    return ProviderRead(
        id=provider.id,
        name=provider.name,
        type=provider.type,
        base_url=provider.base_url,
        pat_token=MASK if provider.pat_token else "",
        username=provider.username,
        extra_config=provider.extra_config or {},
    )


def list_providers(session: Session) -> list[IntegrationProvider]:
    return session.exec(select(IntegrationProvider).order_by(IntegrationProvider.id)).all()


def create_provider(session: Session, payload: ProviderCreate) -> IntegrationProvider:
    provider = IntegrationProvider(**payload.model_dump(mode="json"))
    session.add(provider)
    session.commit()
    session.refresh(provider)
    return provider


def update_provider(session: Session, provider_id: int, payload: ProviderCreate) -> IntegrationProvider:
    provider = get_provider(session, provider_id)
    for k, v in payload.model_dump(mode="json").items():
        setattr(provider, k, v)
    provider.updated_at = utcnow()
    session.add(provider)
    session.commit()
    session.refresh(provider)
    return provider


def delete_provider(session: Session, provider_id: int) -> None:
    provider = get_provider(session, provider_id)
    session.delete(provider)
    session.commit()


async def test_connection(session: Session, provider_id: int) -> ConnectionTestResult:
    config = registry.provider_config(get_provider(session, provider_id))
    try:
        async with registry.get_provider_client(config) as client:
            return ConnectionTestResult(success=await client.test_connection())
    except (UpstreamApiError, httpx.HTTPError) as e:
        logger.warning("Connection test failed for provider %s: %s", provider_id, e)
        return ConnectionTestResult(success=False, error=str(e))
