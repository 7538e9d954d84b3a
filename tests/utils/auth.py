from jose import jwt

from eventvalidate.core.config import settings
from eventvalidate.schemas.token import TokenPayload


def get_staff_authentication_headers(org_id: str, user_id: str = "staff_test") -> dict[str, str]:
    """
    Generates a valid JWT token and authentication headers for a staff member.
    """
    payload = TokenPayload(sub=user_id, org_id=org_id, exp=9999999999)
    token = jwt.encode(payload.model_dump(), settings.JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}
