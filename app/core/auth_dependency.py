"""
Request dependencies: database session, authenticated actor, role guards.

Tokens are issued by the identity layer; `sub` is the actor id. Role and
account status are read from the actors table on every request so a
suspension takes effect without waiting for the token to expire.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from app.core.config import SECRET_KEY, ALGORITHM
from app.db.models.user import Actor, ActorStatus, Role
from app.schemas.actor import ActorContext

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def get_db(request: Request):
    """Database session dependency, bound to the app's session factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_services(request: Request):
    return request.app.state.services


def get_current_actor(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> ActorContext:
    """Resolve the bearer token to the acting actor."""
    return _actor_from_token(token, db)


def get_optional_actor(
    token: Optional[str] = Depends(oauth2_scheme_optional),
    db: Session = Depends(get_db),
) -> Optional[ActorContext]:
    """Like get_current_actor, but visitors without a token get None."""
    if token is None:
        return None
    return _actor_from_token(token, db)


def _actor_from_token(token: str, db: Session) -> ActorContext:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        subject = payload.get("sub")
        if subject is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        actor_id = int(subject)
    except (JWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    actor = db.get(Actor, actor_id)
    if actor is None:
        raise HTTPException(status_code=401, detail="Unknown actor")
    if actor.status == ActorStatus.SUSPENDED.value:
        raise HTTPException(status_code=403, detail="Account suspended")

    return ActorContext(actor_id=actor.id, role=actor.role, status=actor.status)


def require_roles(*roles: Role):
    """Dependency factory: only let the given roles through."""
    allowed = {Role(role) for role in roles}

    def role_checker(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={
                    "error": "PERMISSION_DENIED",
                    "message": "Insufficient role",
                    "details": {"required": sorted(role.value for role in allowed)},
                },
            )
        return actor

    return role_checker
