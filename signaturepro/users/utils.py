# signaturepro/users/utils.py

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from signaturepro.core.db import get_db
from signaturepro.core.exceptions import InvalidTokenError
from signaturepro.pipeline import SigningPipeline, get_pipeline
from signaturepro.users.models import User
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    pipeline: SigningPipeline = Depends(get_pipeline),
) -> User:
    """
    Dependency to get the current authenticated owner from the access token.
    Signature tokens are rejected here; they only open the signing routes.
    """
    try:
        claims = pipeline.tokens.verify_access_token(token)
    except InvalidTokenError as e:
        logger.warning("Access token rejected", error_message=e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = db.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive."
        )

    return user
