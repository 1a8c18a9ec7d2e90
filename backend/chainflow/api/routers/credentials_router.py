"""
Credentials Router.

Stores encrypted credentials and lists their metadata. Secrets are accepted on
creation and never returned.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from chainflow.api.models.execution_models import DeleteResponse
from chainflow.api.utils.dependencies import get_credential_service, get_user_id, to_http_exception
from chainflow.database.models.credentials import CredentialCreate, CredentialResponse
from chainflow.services.credential_service import CredentialService

router = APIRouter(prefix="/credentials", tags=["Credentials"])


@router.post("", response_model=CredentialResponse, status_code=status.HTTP_201_CREATED)
def create_credential(
    request: CredentialCreate,
    user_id: str = Depends(get_user_id),
    service: CredentialService = Depends(get_credential_service),
) -> CredentialResponse:
    try:
        credential = service.create_credential(user_id, request.name, request.type, request.data)
    except Exception as e:
        raise to_http_exception(e)
    return CredentialResponse.model_validate(credential)


@router.get("", response_model=List[CredentialResponse])
def list_credentials(
    user_id: str = Depends(get_user_id),
    service: CredentialService = Depends(get_credential_service),
) -> List[CredentialResponse]:
    return [CredentialResponse.model_validate(credential) for credential in service.list_credentials(user_id)]


@router.delete("/{credential_id}", response_model=DeleteResponse)
def delete_credential(
    credential_id: str,
    user_id: str = Depends(get_user_id),
    service: CredentialService = Depends(get_credential_service),
) -> DeleteResponse:
    """Deactivate the credential; runs referencing it fail from now on."""
    try:
        service.deactivate(credential_id, user_id)
    except Exception as e:
        raise to_http_exception(e)
    return DeleteResponse(id=credential_id)
