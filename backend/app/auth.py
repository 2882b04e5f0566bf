# app/auth.py
"""Identity gateway and role gate.

The identity provider owns login credentials and the role *claim* carried
in bearer tokens.  The ledger owns ``User.role``, which is the
authoritative role; the claim is only consulted when no ``User`` row exists
for the token subject.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.acl import is_allowed, roles_for
from app.config import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY
from app.database import get_session
from app.models import Credential, User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/token")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


@dataclass(frozen=True)
class CallerIdentity:
    subject_id: str
    email: str | None
    role_claim: str | None


class LocalIdentityProvider:
    """Credential store and token issuer backed by the ``credential`` table."""

    def verify_token(self, token: str) -> CallerIdentity:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        subject_id = payload.get("sub")
        if not subject_id:
            raise JWTError("Token has no subject")
        return CallerIdentity(
            subject_id=subject_id,
            email=payload.get("email"),
            role_claim=payload.get("role"),
        )

    def issue_token(self, credential: Credential) -> str:
        return create_access_token(
            data={
                "sub": credential.subject_id,
                "email": credential.email,
                "role": (credential.custom_claims or {}).get("role"),
            }
        )

    def new_credential(self, email: str, password: str, role: str) -> Credential:
        return Credential(
            subject_id=uuid.uuid4().hex,
            email=email,
            password_hash=get_password_hash(password),
            custom_claims={"role": role},
        )

    async def authenticate(
        self, db: AsyncSession, email: str, password: str
    ) -> Credential | None:
        result = await db.execute(select(Credential).where(Credential.email == email))
        credential = result.scalar_one_or_none()
        if not credential or not verify_password(password, credential.password_hash):
            return None
        return credential

    async def set_role_claim(
        self, db: AsyncSession, subject_id: str, role: str
    ) -> None:
        credential = await db.get(Credential, subject_id)
        if credential is None:
            raise LookupError(f"No credential for subject {subject_id}")
        credential.custom_claims = {**(credential.custom_claims or {}), "role": role}
        db.add(credential)
        await db.commit()


identity_provider = LocalIdentityProvider()


def get_identity_provider() -> LocalIdentityProvider:
    return identity_provider


@dataclass
class Caller:
    """Verified identity plus the matching ``User`` row, if any."""

    identity: CallerIdentity
    user: User | None

    @property
    def id(self) -> int | None:
        return self.user.id if self.user else None

    @property
    def role(self) -> str | None:
        if self.user is not None:
            return self.user.role.value
        return self.identity.role_claim

    @property
    def email(self) -> str | None:
        if self.user is not None:
            return self.user.email
        return self.identity.email


async def get_current_caller(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_session),
    provider: LocalIdentityProvider = Depends(get_identity_provider),
) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        identity = provider.verify_token(token)
    except JWTError:
        raise credentials_exception
    result = await db.execute(select(User).where(User.auth_uid == identity.subject_id))
    user = result.scalar_one_or_none()
    if user is None and identity.role_claim is None:
        raise credentials_exception
    return Caller(identity=identity, user=user)


def require_role(*roles: str):
    """Dependency factory to require one of the given caller roles."""

    async def role_dependency(caller: Caller = Depends(get_current_caller)):
        if not is_allowed(caller.role, roles):
            logger.info(
                "Denied %s role %s (requires %s)",
                caller.identity.subject_id,
                caller.role,
                ", ".join(sorted(roles)),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return caller

    return role_dependency


def require_operation(operation: str):
    """Shortcut for ``require_role`` using the ACL operation table."""

    return require_role(*roles_for(operation))
