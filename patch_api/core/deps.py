from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from patch_api.core.config import settings
from patch_api.core.security import IdentityError, account_from_token

bearer = HTTPBearer(auto_error=False)

def get_account(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> str:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing identity token")
    try:
        return account_from_token(creds.credentials, settings.API_JWT_SECRET, claim=settings.ACCOUNT_CLAIM)
    except IdentityError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
