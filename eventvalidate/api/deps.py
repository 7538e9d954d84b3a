# eventvalidate/api/deps.py

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from eventvalidate.core.config import settings
from eventvalidate.core.storage import read_object
from eventvalidate.schemas.token import TokenPayload
from eventvalidate.services.notifications import relay_outbox
from eventvalidate.services.one_time_codes import ConfirmationStore
from eventvalidate.services.validation.gateway import ValidationGateway
from eventvalidate.services.validation.similarity import PerceptualHashScorer


# tokenUrl is only used by the OpenAPI docs; staff tokens come from the
# organization auth service.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        raise credentials_exception

    return token_data


def get_confirmation_store() -> ConfirmationStore:
    return ConfirmationStore()


def get_validation_gateway(
    confirmations: ConfirmationStore = Depends(get_confirmation_store),
) -> ValidationGateway:
    return ValidationGateway(
        confirmations=confirmations,
        scorer=PerceptualHashScorer(),
        photo_loader=read_object,
    )


def ensure_organization_access(organization_id: str, current_user: TokenPayload) -> None:
    """Staff may only act on events that belong to their organization."""
    if current_user.org_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this event",
        )


def get_outbox_relay():
    """The callable run after a response to publish staged domain events."""
    return relay_outbox
