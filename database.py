"""
=============================================================================
DATABASE.PY — Conexión a la Base de Datos de Growth Loop
=============================================================================
En DESARROLLO: SQLite (un archivo growthloop.db junto al código)
En PRODUCCIÓN: PostgreSQL (se detecta por la variable DATABASE_URL)

Los tests apuntan DATABASE_URL a un SQLite temporal ANTES de importar
este módulo, así nunca tocan la base de datos real.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./growthloop.db")

# Los proveedores suelen dar "postgres://", pero usamos psycopg (v3),
# así que la URL tiene que ser "postgresql+psycopg://"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

# ─────────────────────────────────────────────────────────────────────────────
# ENGINE
# ─────────────────────────────────────────────────────────────────────────────
# check_same_thread=False → solo SQLite; FastAPI atiende los endpoints
# síncronos desde un pool de hilos.

engine_args = {}
if DATABASE_URL.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, **engine_args)

# ─────────────────────────────────────────────────────────────────────────────
# SESSION + BASE
# ─────────────────────────────────────────────────────────────────────────────

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Dependencia de FastAPI: una sesión por petición, cerrada siempre al final.

      @app.get("/algo")
      def mi_endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Crea las tablas que falten. Se llama una vez al arrancar."""
    # Importar los modelos registra sus tablas en Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
