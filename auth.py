"""
=============================================================================
AUTH.PY — Autenticación y Sesión del Usuario
=============================================================================
Gestiona:
  - Hashing de contraseñas con bcrypt (nunca en texto plano)
  - Creación y verificación de tokens JWT
  - El usuario actual y su SESIÓN (zona horaria, idioma, "hoy")

Flujo:
  1. El usuario envía username + contraseña
  2. Si son correctos, el servidor genera un JWT
  3. El cliente envía ese JWT en cada petición: "Authorization: Bearer <token>"
  4. get_current_session construye un UserSession explícito para esa petición

La sesión se pasa como argumento a quien la necesite (las métricas reciben
session.today() y session.tz); no hay ningún "usuario actual" global.
"""

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from database import get_db
from metrics import DEFAULT_LOCALE, DEFAULT_TIMEZONE, get_timezone, local_today
from models import User

logger = logging.getLogger("growthloop.auth")

# ─────────────────────────────────────────────────────────────────────────────
# CONFIGURACIÓN
# ─────────────────────────────────────────────────────────────────────────────

SECRET_KEY = os.getenv("SECRET_KEY", "growthloop-dev-secret-key-cambiar-en-produccion")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "30"))

# ─────────────────────────────────────────────────────────────────────────────
# HASHING DE CONTRASEÑAS
# ─────────────────────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


# ─────────────────────────────────────────────────────────────────────────────
# TOKENS JWT
# ─────────────────────────────────────────────────────────────────────────────

def create_access_token(user_id: int) -> str:
    """
    Token firmado con:
      - sub: el ID del usuario
      - exp: cuándo caduca
    El username no va dentro: puede cambiar con PATCH /auth/me.
    """
    expire = datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)
    to_encode = {
        "sub": str(user_id),
        "exp": expire
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Datos del token, o None si es inválido o ha caducado"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ─────────────────────────────────────────────────────────────────────────────
# DEPENDENCIA: USUARIO ACTUAL
# ─────────────────────────────────────────────────────────────────────────────

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Extrae el usuario del token JWT.
      @app.get("/mis-datos")
      def mis_datos(user: User = Depends(get_current_user)): ...
    """
    payload = decode_token(credentials.credentials)

    if payload is None:
        logger.info("🔒 Petición rechazada: token inválido o expirado")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido o expirado",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token sin identificador de usuario"
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Usuario no encontrado"
        )

    return user


# ─────────────────────────────────────────────────────────────────────────────
# SESIÓN
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UserSession:
    """Lo que las métricas necesitan saber del usuario que hace la petición"""
    user_id: int
    username: str
    timezone: str
    locale: str

    @property
    def tz(self):
        return get_timezone(self.timezone)

    def today(self) -> date:
        return local_today(self.tz)


def session_for(user: User) -> UserSession:
    return UserSession(
        user_id=user.id,
        username=user.username,
        timezone=user.timezone or DEFAULT_TIMEZONE,
        locale=user.locale or DEFAULT_LOCALE,
    )


async def get_current_session(user: User = Depends(get_current_user)) -> UserSession:
    return session_for(user)
