from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import jwt_manager
from app.services.attempt import AttemptService
from app.services.notification import get_notification_dispatcher

security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> int:
    """
    Dependency that requires a valid Bearer token and returns the caller's id.
    Raises 401 Unauthorized if the token is missing or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = jwt_manager.verify_token(credentials.credentials, "access")

    if "user_id" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user id",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return int(payload["user_id"])


# Candidates and test owners share one identity claim
get_current_candidate = get_current_user_id


def get_attempt_service(db: Session = Depends(get_db)) -> AttemptService:
    return AttemptService(db, notifier=get_notification_dispatcher())
