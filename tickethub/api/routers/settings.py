from fastapi import APIRouter, Depends
from sqlmodel import Session

from tickethub.api.deps import OrchestratorDep, SessionDep
from tickethub.domain.models import AppSetting
from tickethub.domain.schemas import ConnectionTestResult, ProviderCreate, ProviderRead, SettingUpdate
from tickethub.services import provider_service, settings_service
from tickethub.services.sync_service import SyncOrchestrator

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/providers", response_model=list[ProviderRead])
def get_providers(session: Session = Depends(SessionDep)):
    return [provider_service.to_read(p) for p in provider_service.list_providers(session)]


@router.post("/providers", response_model=ProviderRead)
def post_provider(payload: ProviderCreate, session: Session = Depends(SessionDep)):
    return provider_service.to_read(provider_service.create_provider(session, payload))


@router.put("/providers/{provider_id}", response_model=ProviderRead)
def put_provider(provider_id: int, payload: ProviderCreate, session: Session = Depends(SessionDep)):
    return provider_service.to_read(provider_service.update_provider(session, provider_id, payload))


@router.delete("/providers/{provider_id}")
def remove_provider(provider_id: int, session: Session = Depends(SessionDep)):
    provider_service.delete_provider(session, provider_id)
    return {"success": True}


@router.post("/providers/{provider_id}/test", response_model=ConnectionTestResult)
async def post_test_connection(provider_id: int, session: Session = Depends(SessionDep)):
    return await provider_service.test_connection(session, provider_id)


@router.get("/app", response_model=list[AppSetting])
def get_app_settings(session: Session = Depends(SessionDep)):
    return settings_service.list_settings(session)


@router.put("/app/{key}", response_model=AppSetting)
async def put_app_setting(
    key: str,
    payload: SettingUpdate,
    session: Session = Depends(SessionDep),
    sync: SyncOrchestrator = Depends(OrchestratorDep),
):
    setting = settings_service.set_setting(session, key, payload.value)
    if key == settings_service.SYNC_INTERVAL_KEY:
        sync.start()
    return setting
