"""
=============================================================================
MODELS.PY — Tablas de la Base de Datos de Growth Loop
=============================================================================
Cada clase = una tabla. Cada atributo = una columna.

  USER
  ├── todos[]
  ├── milestones[]  (un todo puede apuntar a un milestone)
  ├── visions[]
  └── journals[] ──→ mood_entries[]
                 └──→ answers[]

Los instantes (fechas límite, creación, momento de un mood) se guardan como
epoch en MILISEGUNDOS, igual que los recibe y devuelve la API.
La fecha de un journal es un string "YYYY-MM-DD" en el día local del usuario.
"""

import enum
import time

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, Float, Text,
    ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship

from database import Base


def now_millis() -> int:
    """Instante actual en epoch milisegundos"""
    return int(time.time() * 1000)


# =============================================================================
# ===================== ENUMS =================================================
# =============================================================================

class MilestoneType(str, enum.Enum):
    """Cómo se mide el progreso de un milestone"""
    self_rating = "self-rating"  # El usuario se autoevalúa 0-100%
    numeric = "numeric"          # De un valor a otro (peso 80kg → 70kg)
    count = "count"              # De 0 a N veces (leer 12 libros)

class ColorTheme(str, enum.Enum):
    mint = "mint"
    peach = "peach"
    dream = "dream"
    sky = "sky"

class VisionCategory(str, enum.Enum):
    life = "life"
    love = "love"
    career = "career"
    growth = "growth"

class MoodLevel(int, enum.Enum):
    """Nivel de ánimo (1-5)"""
    tired = 1
    low = 2
    neutral = 3
    happy = 4
    great = 5


# Preguntas fijas del diario. Una respuesta como máximo por pregunta y día.
JOURNAL_QUESTIONS = [
    {"id": "grateful", "title": "Gratitud", "prompt": "¿Por qué das gracias hoy?"},
    {"id": "achievement", "title": "Logro", "prompt": "¿Qué hiciste hoy de lo que te sientas orgulloso?"},
    {"id": "learn", "title": "Aprendizaje", "prompt": "¿Qué aprendiste hoy?"},
    {"id": "tomorrow", "title": "Mañana", "prompt": "¿Qué es lo más importante para mañana?"},
]
JOURNAL_QUESTION_IDS = [q["id"] for q in JOURNAL_QUESTIONS]


# =============================================================================
# ===================== TABLA 1: USERS ========================================
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # ── Preferencias ──
    timezone = Column(String(50), nullable=True)
    # timezone → nombre IANA ("Europe/Madrid"); NULL = el de por defecto
    locale = Column(String(5), nullable=True)
    # locale → idioma de las etiquetas de los días ("es", "en", "zh")

    created_at = Column(BigInteger, default=now_millis)

    todos = relationship("Todo", back_populates="user", cascade="all, delete-orphan")
    milestones = relationship("Milestone", back_populates="user", cascade="all, delete-orphan")
    visions = relationship("Vision", back_populates="user", cascade="all, delete-orphan")
    journals = relationship("Journal", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: TODOS ========================================
# =============================================================================

class Todo(Base):
    __tablename__ = "todos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    is_focus = Column(Boolean, default=False)
    # is_focus → la tarea "foco" del día, se muestra arriba en el dashboard
    completed = Column(Boolean, default=False)

    milestone_id = Column(Integer, ForeignKey("milestones.id", ondelete="SET NULL"), nullable=True)
    due_date = Column(BigInteger, nullable=False)
    tags = Column(JSON, default=list)
    # tags → ["salud", "trabajo"]; el orden se conserva para mostrarlas

    created_at = Column(BigInteger, default=now_millis)

    user = relationship("User", back_populates="todos")
    milestone = relationship("Milestone", back_populates="todos")


# =============================================================================
# ===================== TABLA 3: MILESTONES ===================================
# =============================================================================
# Los valores numéricos admiten NULL: registros antiguos no los tenían.
# metrics.normalize_milestone rellena los huecos antes de calcular.

class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    type = Column(String(20), nullable=True, default=MilestoneType.numeric.value)
    start_value = Column(Float, nullable=True)
    target_value = Column(Float, nullable=True)
    current_value = Column(Float, nullable=True)

    deadline = Column(BigInteger, nullable=False)
    color_theme = Column(String(10), default=ColorTheme.mint.value)

    created_at = Column(BigInteger, default=now_millis)

    user = relationship("User", back_populates="milestones")
    todos = relationship("Todo", back_populates="milestone")
    # Al borrar el milestone, SQLAlchemy pone milestone_id = NULL en sus todos


# =============================================================================
# ===================== TABLA 4: VISIONS ======================================
# =============================================================================

class Vision(Base):
    __tablename__ = "visions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    category = Column(String(20), default=VisionCategory.life.value)

    created_at = Column(BigInteger, default=now_millis)

    user = relationship("User", back_populates="visions")


# =============================================================================
# ===================== TABLA 5: JOURNALS =====================================
# =============================================================================
# Un journal por usuario y día. Se crea al registrar el primer mood o la
# primera respuesta del día.

class Journal(Base):
    __tablename__ = "journals"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_journal_user_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    date = Column(String(10), nullable=False)
    # date → "2026-10-18"

    created_at = Column(BigInteger, default=now_millis)
    updated_at = Column(BigInteger, default=now_millis, onupdate=now_millis)

    user = relationship("User", back_populates="journals")
    mood_entries = relationship(
        "MoodEntry", back_populates="journal", cascade="all, delete-orphan",
        order_by=lambda: [MoodEntry.timestamp, MoodEntry.id]
    )
    answers = relationship(
        "JournalAnswer", back_populates="journal", cascade="all, delete-orphan",
        order_by="JournalAnswer.id"
    )


class MoodEntry(Base):
    """Un registro de ánimo dentro del día. Puede haber varios por journal."""
    __tablename__ = "mood_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    journal_id = Column(Integer, ForeignKey("journals.id"), nullable=False, index=True)

    mood = Column(Integer, nullable=False)
    # mood → 1 (agotado) a 5 (genial)
    note = Column(Text, nullable=True)
    timestamp = Column(BigInteger, default=now_millis)

    journal = relationship("Journal", back_populates="mood_entries")


class JournalAnswer(Base):
    """Respuesta a una de las JOURNAL_QUESTIONS"""
    __tablename__ = "journal_answers"
    __table_args__ = (UniqueConstraint("journal_id", "question_id", name="uq_answer_question"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    journal_id = Column(Integer, ForeignKey("journals.id"), nullable=False, index=True)

    question_id = Column(String(30), nullable=False)
    content = Column(Text, nullable=False)

    journal = relationship("Journal", back_populates="answers")
