"""
=============================================================================
MAIN.PY — La API de Growth Loop
=============================================================================
Este archivo define TODOS los endpoints de la API REST.

Organización por secciones:
  1. AUTH       → Registro, login, perfil, contraseña
  2. TODOS      → CRUD de tareas del día
  3. MILESTONES → CRUD de objetivos a largo plazo + progreso
  4. VISIONS    → Tablero de visión
  5. JOURNALS   → Diario: moods del día y preguntas de reflexión
  6. DASHBOARD  → Energía semanal, racha, tarea foco
  7. EXPORT     → Todos los datos del usuario

Las cuentas (energía, racha, progreso) viven en metrics.py; aquí solo se
cargan los registros y se le pasan junto con la sesión del usuario.
"""

import os
import logging
import traceback
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, status, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db, init_db
from models import (
    User, Todo, Milestone, Vision, Journal, MoodEntry, JournalAnswer,
    JOURNAL_QUESTIONS, now_millis
)
from schemas import (
    UserRegister, UserLogin, TokenResponse, UserResponse, UserUpdate, PasswordChange,
    TodoCreate, TodoUpdate, TodoResponse,
    MilestoneCreate, MilestoneUpdate, MilestoneProgressUpdate, MilestoneResponse,
    VisionCreate, VisionUpdate, VisionResponse,
    MoodEntryCreate, MoodEntryUpdate, MoodEntryResponse, AnswersReplace,
    JournalResponse, QuestionResponse,
    EnergyPointResponse, StreakResponse, MilestoneProgressItem, DashboardResponse
)
from auth import (
    hash_password, verify_password, create_access_token,
    get_current_user, get_current_session, UserSession
)
from metrics import (
    compute_progress, compute_weekly_energy, compute_streak,
    days_remaining, find_focus_todo
)

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("growthloop.api")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Arrancando Growth Loop...")
    init_db()
    logger.info("✅ Base de datos inicializada")

    yield

    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Growth Loop API",
    description="Tareas, milestones, tablero de visión y diario, con energía semanal y rachas",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# GLOBAL ERROR HANDLER
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados y devuelve un JSON con el detalle"""
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check():
    return {
        "status": "ok",
        "app": "Growth Loop",
        "version": "1.0.0",
        "timestamp": now_millis()
    }


# =============================================================================
# ===================== SECCIÓN 1: AUTH =======================================
# =============================================================================

@app.post("/auth/register", response_model=TokenResponse, tags=["Auth"])
def register(data: UserRegister, db: Session = Depends(get_db)):
    """Registra un usuario nuevo y devuelve su token"""
    if db.query(User).filter(User.username == data.username).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ese nombre de usuario ya está en uso"
        )
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ya existe una cuenta con este email"
        )

    user = User(
        username=data.username,
        email=data.email,
        password_hash=hash_password(data.password)
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"👤 Nuevo usuario registrado: {user.username}")

    return TokenResponse(
        access_token=create_access_token(user.id),
        user_id=user.id,
        username=user.username
    )


@app.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
def login(data: UserLogin, db: Session = Depends(get_db)):
    """Inicia sesión con username y contraseña"""
    user = db.query(User).filter(User.username == data.username).first()

    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario o contraseña incorrectos"
        )

    return TokenResponse(
        access_token=create_access_token(user.id),
        user_id=user.id,
        username=user.username
    )


@app.get("/auth/me", response_model=UserResponse, tags=["Auth"])
def get_me(user: User = Depends(get_current_user)):
    return user


@app.patch("/auth/me", response_model=UserResponse, tags=["Auth"])
def update_me(data: UserUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Cambia username, email, zona horaria o idioma"""
    if data.username is not None and data.username != user.username:
        taken = db.query(User).filter(User.username == data.username, User.id != user.id).first()
        if taken:
            raise HTTPException(status_code=409, detail="Ese nombre de usuario ya está en uso")
        user.username = data.username
    if data.email is not None and data.email != user.email:
        taken = db.query(User).filter(User.email == data.email, User.id != user.id).first()
        if taken:
            raise HTTPException(status_code=409, detail="Ya existe una cuenta con este email")
        user.email = data.email
    if data.timezone is not None:
        user.timezone = data.timezone
    if data.locale is not None:
        user.locale = data.locale

    db.commit()
    db.refresh(user)
    return user


@app.put("/auth/me/password", tags=["Auth"])
def change_password(data: PasswordChange, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user.password_hash = hash_password(data.password)
    db.commit()
    logger.info(f"🔑 Contraseña cambiada: {user.username}")
    return {"message": "Contraseña actualizada"}


@app.delete("/auth/me", tags=["Auth"])
def delete_account(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Borra la cuenta y TODOS los datos del usuario (irreversible)"""
    username = user.username
    db.delete(user)
    db.commit()
    logger.info(f"🗑️ Cuenta borrada: {username}")
    return {"message": "Cuenta y todos los datos eliminados correctamente"}


# =============================================================================
# ===================== SECCIÓN 2: TODOS ======================================
# =============================================================================

def _get_todo(db: Session, user: User, todo_id: int) -> Todo:
    todo = db.query(Todo).filter(Todo.id == todo_id, Todo.user_id == user.id).first()
    if not todo:
        raise HTTPException(status_code=404, detail="Tarea no encontrada")
    return todo


def _check_milestone(db: Session, user: User, milestone_id: Optional[int]):
    """Un todo solo puede enlazarse a un milestone del mismo usuario"""
    if milestone_id is None:
        return
    exists = db.query(Milestone).filter(
        Milestone.id == milestone_id, Milestone.user_id == user.id
    ).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Milestone no encontrado")


@app.post("/todos", response_model=TodoResponse, tags=["Todos"])
def create_todo(data: TodoCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _check_milestone(db, user, data.milestone_id)

    todo = Todo(user_id=user.id, **data.model_dump())
    db.add(todo)
    db.commit()
    db.refresh(todo)

    logger.info(f"➕ Tarea creada: {todo.title} (user: {user.username})")
    return todo


@app.get("/todos", response_model=list[TodoResponse], tags=["Todos"])
def list_todos(
    completed: Optional[bool] = None,
    milestone_id: Optional[int] = None,
    tag: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Lista tareas con filtros opcionales"""
    query = db.query(Todo).filter(Todo.user_id == user.id)

    if completed is not None:
        query = query.filter(Todo.completed == completed)
    if milestone_id is not None:
        query = query.filter(Todo.milestone_id == milestone_id)

    todos = query.order_by(Todo.due_date.asc(), Todo.created_at.desc()).all()

    # tags es una columna JSON: el filtro se hace en Python
    if tag:
        todos = [t for t in todos if tag in (t.tags or [])]
    return todos


@app.get("/todos/{todo_id}", response_model=TodoResponse, tags=["Todos"])
def get_todo(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _get_todo(db, user, todo_id)


@app.patch("/todos/{todo_id}", response_model=TodoResponse, tags=["Todos"])
def update_todo(
    todo_id: int, data: TodoUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    todo = _get_todo(db, user, todo_id)
    update_data = data.model_dump(exclude_unset=True)

    if update_data.get("milestone_id") is not None:
        _check_milestone(db, user, update_data["milestone_id"])

    for key, value in update_data.items():
        setattr(todo, key, value)

    db.commit()
    db.refresh(todo)
    return todo


@app.patch("/todos/{todo_id}/toggle", response_model=TodoResponse, tags=["Todos"])
def toggle_todo(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Marca/desmarca una tarea como completada"""
    todo = _get_todo(db, user, todo_id)
    todo.completed = not todo.completed
    db.commit()
    db.refresh(todo)
    return todo


@app.delete("/todos/{todo_id}", tags=["Todos"])
def delete_todo(todo_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    todo = _get_todo(db, user, todo_id)
    db.delete(todo)
    db.commit()
    return {"message": "Tarea eliminada"}


# =============================================================================
# ===================== SECCIÓN 3: MILESTONES =================================
# =============================================================================

def _get_milestone(db: Session, user: User, milestone_id: int) -> Milestone:
    milestone = db.query(Milestone).filter(
        Milestone.id == milestone_id, Milestone.user_id == user.id
    ).first()
    if not milestone:
        raise HTTPException(status_code=404, detail="Milestone no encontrado")
    return milestone


def _milestone_response(milestone: Milestone) -> MilestoneResponse:
    """El milestone tal cual, más su progreso y los días que le quedan"""
    return MilestoneResponse.model_validate(milestone).model_copy(update={
        "progress": compute_progress(milestone),
        "days_remaining": days_remaining(milestone.deadline, now_millis()),
    })


@app.post("/milestones", response_model=MilestoneResponse, tags=["Milestones"])
def create_milestone(data: MilestoneCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    milestone = Milestone(user_id=user.id, **data.model_dump())
    db.add(milestone)
    db.commit()
    db.refresh(milestone)

    logger.info(f"🎯 Milestone creado: {milestone.title} (user: {user.username})")
    return _milestone_response(milestone)


@app.get("/milestones", response_model=list[MilestoneResponse], tags=["Milestones"])
def list_milestones(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    milestones = db.query(Milestone).filter(
        Milestone.user_id == user.id
    ).order_by(Milestone.created_at.desc(), Milestone.id.desc()).all()
    return [_milestone_response(m) for m in milestones]


@app.get("/milestones/{milestone_id}", response_model=MilestoneResponse, tags=["Milestones"])
def get_milestone(milestone_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _milestone_response(_get_milestone(db, user, milestone_id))


@app.patch("/milestones/{milestone_id}", response_model=MilestoneResponse, tags=["Milestones"])
def update_milestone(
    milestone_id: int, data: MilestoneUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Edición completa de un milestone"""
    milestone = _get_milestone(db, user, milestone_id)

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(milestone, key, value)

    db.commit()
    db.refresh(milestone)
    return _milestone_response(milestone)


@app.patch("/milestones/{milestone_id}/progress", response_model=MilestoneResponse, tags=["Milestones"])
def update_milestone_progress(
    milestone_id: int, data: MilestoneProgressUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Actualiza solo el valor actual"""
    milestone = _get_milestone(db, user, milestone_id)
    milestone.current_value = data.current_value
    db.commit()
    db.refresh(milestone)
    return _milestone_response(milestone)


@app.delete("/milestones/{milestone_id}", tags=["Milestones"])
def delete_milestone(milestone_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Elimina un milestone; sus tareas se quedan, pero sin enlace"""
    milestone = _get_milestone(db, user, milestone_id)
    title = milestone.title
    db.delete(milestone)
    db.commit()
    return {"message": f"Milestone '{title}' eliminado"}


# =============================================================================
# ===================== SECCIÓN 4: VISIONS ====================================
# =============================================================================

def _get_vision(db: Session, user: User, vision_id: int) -> Vision:
    vision = db.query(Vision).filter(Vision.id == vision_id, Vision.user_id == user.id).first()
    if not vision:
        raise HTTPException(status_code=404, detail="Visión no encontrada")
    return vision


@app.post("/visions", response_model=VisionResponse, tags=["Visions"])
def create_vision(data: VisionCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    vision = Vision(user_id=user.id, **data.model_dump())
    db.add(vision)
    db.commit()
    db.refresh(vision)
    return vision


@app.get("/visions", response_model=list[VisionResponse], tags=["Visions"])
def list_visions(
    category: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(Vision).filter(Vision.user_id == user.id)
    if category:
        query = query.filter(Vision.category == category)
    return query.order_by(Vision.created_at.desc(), Vision.id.desc()).all()


@app.patch("/visions/{vision_id}", response_model=VisionResponse, tags=["Visions"])
def update_vision(
    vision_id: int, data: VisionUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    vision = _get_vision(db, user, vision_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(vision, key, value)
    db.commit()
    db.refresh(vision)
    return vision


@app.delete("/visions/{vision_id}", tags=["Visions"])
def delete_vision(vision_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    vision = _get_vision(db, user, vision_id)
    db.delete(vision)
    db.commit()
    return {"message": "Visión eliminada"}


# =============================================================================
# ===================== SECCIÓN 5: JOURNALS ===================================
# =============================================================================
# Un journal por día ("YYYY-MM-DD"). No se crea hasta que hay algo que
# guardar: el primer mood o las primeras respuestas.

def _find_journal(db: Session, user_id: int, journal_date: str) -> Optional[Journal]:
    return db.query(Journal).filter(
        Journal.user_id == user_id, Journal.date == journal_date
    ).first()


def _get_journal(db: Session, user_id: int, journal_date: str) -> Journal:
    journal = _find_journal(db, user_id, journal_date)
    if not journal:
        raise HTTPException(status_code=404, detail="No hay diario para ese día")
    return journal


def _get_or_create_journal(db: Session, user_id: int, journal_date: str) -> Journal:
    journal = _find_journal(db, user_id, journal_date)
    if journal:
        return journal

    journal = Journal(user_id=user_id, date=journal_date)
    db.add(journal)
    db.flush()
    logger.info(f"📓 Diario creado para {journal_date} (user_id: {user_id})")
    return journal


def _get_mood_entry(journal: Journal, entry_id: int) -> MoodEntry:
    for entry in journal.mood_entries:
        if entry.id == entry_id:
            return entry
    raise HTTPException(status_code=404, detail="Registro de ánimo no encontrado")


@app.get("/journals", response_model=list[JournalResponse], tags=["Journals"])
def list_journals(session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    """Todos los diarios, el más reciente primero"""
    return db.query(Journal).filter(
        Journal.user_id == session.user_id
    ).order_by(Journal.date.desc()).all()


@app.get("/journals/questions", response_model=list[QuestionResponse], tags=["Journals"])
def list_questions():
    """Las preguntas fijas de reflexión"""
    return JOURNAL_QUESTIONS


@app.get("/journals/today", response_model=JournalResponse, tags=["Journals"])
def get_today_journal(session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    """El diario de hoy (en la zona del usuario); se crea si no existe"""
    journal = _get_or_create_journal(db, session.user_id, session.today().isoformat())
    db.commit()
    db.refresh(journal)
    return journal


@app.get("/journals/{journal_date}", response_model=JournalResponse, tags=["Journals"])
def get_journal(journal_date: date, session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    return _get_journal(db, session.user_id, journal_date.isoformat())


@app.post("/journals/{journal_date}/moods", response_model=JournalResponse, tags=["Journals"])
def add_mood_entry(
    journal_date: date, data: MoodEntryCreate,
    session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)
):
    """Añade un registro de ánimo al día (puede haber varios)"""
    journal = _get_or_create_journal(db, session.user_id, journal_date.isoformat())
    journal.mood_entries.append(MoodEntry(mood=data.mood, note=data.note, timestamp=now_millis()))
    journal.updated_at = now_millis()

    db.commit()
    db.refresh(journal)
    return journal


@app.patch("/journals/{journal_date}/moods/{entry_id}", response_model=MoodEntryResponse, tags=["Journals"])
def update_mood_entry(
    journal_date: date, entry_id: int, data: MoodEntryUpdate,
    session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)
):
    journal = _get_journal(db, session.user_id, journal_date.isoformat())
    entry = _get_mood_entry(journal, entry_id)

    for key, value in data.model_dump(exclude_unset=True).items():
        if key == "mood" and value is None:
            continue
        setattr(entry, key, value)
    journal.updated_at = now_millis()

    db.commit()
    db.refresh(entry)
    return entry


@app.delete("/journals/{journal_date}/moods/{entry_id}", tags=["Journals"])
def delete_mood_entry(
    journal_date: date, entry_id: int,
    session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)
):
    journal = _get_journal(db, session.user_id, journal_date.isoformat())
    entry = _get_mood_entry(journal, entry_id)

    journal.mood_entries.remove(entry)
    journal.updated_at = now_millis()
    db.commit()
    return {"message": "Registro de ánimo eliminado"}


@app.put("/journals/{journal_date}/answers", response_model=JournalResponse, tags=["Journals"])
def replace_answers(
    journal_date: date, data: AnswersReplace,
    session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)
):
    """Sustituye todas las respuestas del día por las enviadas"""
    journal = _get_or_create_journal(db, session.user_id, journal_date.isoformat())

    # Borrar primero: (journal_id, question_id) es único
    journal.answers.clear()
    db.flush()

    for answer in data.answers:
        journal.answers.append(JournalAnswer(question_id=answer.question_id, content=answer.content))
    journal.updated_at = now_millis()

    db.commit()
    db.refresh(journal)
    return journal


# =============================================================================
# ===================== SECCIÓN 6: DASHBOARD ==================================
# =============================================================================

def _load_todos(db: Session, user_id: int) -> list[Todo]:
    return db.query(Todo).filter(Todo.user_id == user_id).order_by(Todo.created_at, Todo.id).all()


def _load_journals(db: Session, user_id: int) -> list[Journal]:
    return db.query(Journal).filter(Journal.user_id == user_id).all()


@app.get("/dashboard/energy", response_model=list[EnergyPointResponse], tags=["Dashboard"])
def get_weekly_energy(session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    """Energía de los últimos 7 días (hoy el último)"""
    return compute_weekly_energy(
        _load_todos(db, session.user_id), _load_journals(db, session.user_id),
        today=session.today(), tz=session.tz, locale=session.locale
    )


@app.get("/dashboard/streak", response_model=StreakResponse, tags=["Dashboard"])
def get_streak(session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    streak = compute_streak(_load_todos(db, session.user_id), today=session.today(), tz=session.tz)
    return StreakResponse(streak=streak)


@app.get("/dashboard", response_model=DashboardResponse, tags=["Dashboard"])
def get_dashboard(session: UserSession = Depends(get_current_session), db: Session = Depends(get_db)):
    """Todo lo que enseña la pantalla principal de una vez"""
    todos = _load_todos(db, session.user_id)
    journals = _load_journals(db, session.user_id)
    milestones = db.query(Milestone).filter(
        Milestone.user_id == session.user_id
    ).order_by(Milestone.created_at.desc(), Milestone.id.desc()).all()
    today = session.today()
    focus = find_focus_todo(todos)

    return DashboardResponse(
        energy=[
            EnergyPointResponse.model_validate(p)
            for p in compute_weekly_energy(todos, journals, today=today, tz=session.tz, locale=session.locale)
        ],
        streak=compute_streak(todos, today=today, tz=session.tz),
        focus_todo=TodoResponse.model_validate(focus) if focus else None,
        pending_todos=sum(1 for t in todos if not t.completed),
        milestones=[
            MilestoneProgressItem(
                id=m.id, title=m.title, color_theme=m.color_theme,
                progress=compute_progress(m)
            )
            for m in milestones
        ],
    )


# =============================================================================
# ===================== SECCIÓN 7: EXPORT =====================================
# =============================================================================

@app.get("/export/data", tags=["Export"])
def export_all_data(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Exporta TODOS los datos del usuario en JSON"""
    todos = db.query(Todo).filter(Todo.user_id == user.id).all()
    milestones = db.query(Milestone).filter(Milestone.user_id == user.id).all()
    visions = db.query(Vision).filter(Vision.user_id == user.id).all()
    journals = db.query(Journal).filter(Journal.user_id == user.id).order_by(Journal.date).all()

    return {
        "export_date": now_millis(),
        "user": UserResponse.model_validate(user).model_dump(),
        "todos": [TodoResponse.model_validate(t).model_dump() for t in todos],
        "milestones": [_milestone_response(m).model_dump() for m in milestones],
        "visions": [VisionResponse.model_validate(v).model_dump() for v in visions],
        "journals": [JournalResponse.model_validate(j).model_dump() for j in journals],
    }
