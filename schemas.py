"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
  - Models (SQLAlchemy) → definen las TABLAS
  - Schemas (Pydantic)  → definen qué DATOS acepta/devuelve la API

Convención de nombres:
  XxxCreate   → para crear algo nuevo (POST)
  XxxUpdate   → para actualizar algo (PATCH)
  XxxResponse → lo que devuelve la API (GET)

Los instantes viajan como epoch en milisegundos (int), acotados al rango que
datetime sabe representar (años 1 a 9999).
"""

from typing import Optional

import pytz
from pydantic import BaseModel, Field, EmailStr, field_validator

from models import (
    MilestoneType, ColorTheme, VisionCategory, JOURNAL_QUESTION_IDS
)

# 0001-01-01T00:00:00Z y 9999-12-31T23:59:59.999Z en milisegundos
MIN_TIMESTAMP_MS = -62135596800000
MAX_TIMESTAMP_MS = 253402300799999


# =============================================================================
# ===================== AUTH ==================================================
# =============================================================================

class UserRegister(BaseModel):
    """Datos para registrar un usuario nuevo"""
    username: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, description="Mínimo 6 caracteres")

class UserLogin(BaseModel):
    username: str
    password: str

class TokenResponse(BaseModel):
    """Respuesta con el token JWT"""
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str

class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    timezone: Optional[str] = None
    locale: Optional[str] = None
    created_at: int
    model_config = {"from_attributes": True}

class UserUpdate(BaseModel):
    """Campos actualizables del usuario"""
    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    timezone: Optional[str] = None
    locale: Optional[str] = Field(default=None, pattern="^(es|en|zh)$")

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value):
        if value is not None and value not in pytz.all_timezones_set:
            raise ValueError(f"Zona horaria desconocida: {value}")
        return value

class PasswordChange(BaseModel):
    password: str = Field(min_length=6, description="Mínimo 6 caracteres")


# =============================================================================
# ===================== TODOS =================================================
# =============================================================================

class TodoCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    is_focus: bool = False
    completed: bool = False
    milestone_id: Optional[int] = None
    due_date: int = Field(ge=MIN_TIMESTAMP_MS, le=MAX_TIMESTAMP_MS)
    tags: list[str] = []

class TodoUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_focus: Optional[bool] = None
    completed: Optional[bool] = None
    milestone_id: Optional[int] = None
    due_date: Optional[int] = Field(default=None, ge=MIN_TIMESTAMP_MS, le=MAX_TIMESTAMP_MS)
    tags: Optional[list[str]] = None

    @field_validator("title", "is_focus", "completed", "due_date")
    @classmethod
    def reject_null(cls, value):
        # Omitir un campo lo deja igual; mandarlo a null no vale
        if value is None:
            raise ValueError("Este campo no puede ser null")
        return value

class TodoResponse(BaseModel):
    id: int
    title: str
    is_focus: bool
    completed: bool
    milestone_id: Optional[int]
    due_date: int
    tags: list[str]
    created_at: int
    model_config = {"from_attributes": True}

    @field_validator("tags", mode="before")
    @classmethod
    def tags_default(cls, value):
        return value or []


# =============================================================================
# ===================== MILESTONES ============================================
# =============================================================================

class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    type: MilestoneType = MilestoneType.numeric.value
    start_value: float = 0
    target_value: float = 100
    current_value: float = 0
    deadline: int = Field(ge=MIN_TIMESTAMP_MS, le=MAX_TIMESTAMP_MS)
    color_theme: ColorTheme = ColorTheme.mint.value
    model_config = {"use_enum_values": True}

class MilestoneUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[MilestoneType] = None
    start_value: Optional[float] = None
    target_value: Optional[float] = None
    current_value: Optional[float] = None
    deadline: Optional[int] = Field(default=None, ge=MIN_TIMESTAMP_MS, le=MAX_TIMESTAMP_MS)
    color_theme: Optional[ColorTheme] = None
    model_config = {"use_enum_values": True}

    @field_validator("title", "deadline", "color_theme")
    @classmethod
    def reject_null(cls, value):
        # Omitir un campo lo deja igual; mandarlo a null no vale
        if value is None:
            raise ValueError("Este campo no puede ser null")
        return value

class MilestoneProgressUpdate(BaseModel):
    """Solo el valor actual (el botón "actualizar progreso")"""
    current_value: float

class MilestoneResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    type: Optional[str]
    start_value: Optional[float]
    target_value: Optional[float]
    current_value: Optional[float]
    deadline: int
    color_theme: Optional[str]
    created_at: int
    progress: int = 0
    days_remaining: int = 0
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== VISIONS ===============================================
# =============================================================================

class VisionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    category: VisionCategory = VisionCategory.life.value
    model_config = {"use_enum_values": True}

class VisionUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    category: Optional[VisionCategory] = None
    model_config = {"use_enum_values": True}

    @field_validator("title", "category")
    @classmethod
    def reject_null(cls, value):
        # Omitir un campo lo deja igual; mandarlo a null no vale
        if value is None:
            raise ValueError("Este campo no puede ser null")
        return value

class VisionResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    image_url: Optional[str]
    category: str
    created_at: int
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== JOURNALS ==============================================
# =============================================================================

class MoodEntryCreate(BaseModel):
    mood: int = Field(ge=1, le=5, description="1=agotado, 5=genial")
    note: Optional[str] = None

class MoodEntryUpdate(BaseModel):
    mood: Optional[int] = Field(default=None, ge=1, le=5)
    note: Optional[str] = None

class MoodEntryResponse(BaseModel):
    id: int
    mood: int
    note: Optional[str]
    timestamp: int
    model_config = {"from_attributes": True}

class AnswerItem(BaseModel):
    question_id: str
    content: str

class AnswersReplace(BaseModel):
    """Sustituye TODAS las respuestas del día de una vez"""
    answers: list[AnswerItem]

    @field_validator("answers")
    @classmethod
    def check_questions(cls, answers):
        seen = set()
        for answer in answers:
            if answer.question_id not in JOURNAL_QUESTION_IDS:
                raise ValueError(f"Pregunta desconocida: {answer.question_id}")
            if answer.question_id in seen:
                raise ValueError(f"Pregunta repetida: {answer.question_id}")
            seen.add(answer.question_id)
        return answers

class AnswerResponse(BaseModel):
    question_id: str
    content: str
    model_config = {"from_attributes": True}

class JournalResponse(BaseModel):
    id: int
    date: str
    mood_entries: list[MoodEntryResponse] = []
    answers: list[AnswerResponse] = []
    created_at: int
    updated_at: int
    model_config = {"from_attributes": True}

class QuestionResponse(BaseModel):
    id: str
    title: str
    prompt: str


# =============================================================================
# ===================== DASHBOARD =============================================
# =============================================================================

class EnergyPointResponse(BaseModel):
    day: str
    value: int = Field(ge=0, le=100)
    model_config = {"from_attributes": True}

class StreakResponse(BaseModel):
    streak: int = Field(ge=0)

class MilestoneProgressItem(BaseModel):
    id: int
    title: str
    color_theme: Optional[str]
    progress: int

class DashboardResponse(BaseModel):
    energy: list[EnergyPointResponse]
    streak: int
    focus_todo: Optional[TodoResponse] = None
    pending_todos: int
    milestones: list[MilestoneProgressItem] = []
