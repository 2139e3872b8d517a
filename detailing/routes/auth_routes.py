import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from detailing.auth import jwt_handler
from detailing.auth.dependencies import require_admin
from detailing.core import config

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


def verify_admin_password(password: str) -> bool:
    if not config.ADMIN_PASSWORD:
        logger.error('ADMIN_PASSWORD environment variable not set')
        return False
    return hmac.compare_digest(password.encode(), config.ADMIN_PASSWORD.encode())


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest):
    if not verify_admin_password(data.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid password.',
        )

    return TokenResponse(access_token=jwt_handler.create_access_token(subject='admin'))


@router.get('/check')
def check(admin: dict = Depends(require_admin)):
    return {'authenticated': True, 'role': admin.get('role')}
