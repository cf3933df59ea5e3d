"""
=============================================================================
METRICS.PY — Métricas Derivadas de Growth Loop
=============================================================================
Calcula los números que enseña el dashboard:
  - Progreso de un milestone (0-100%)
  - Energía semanal (7 puntuaciones de 0 a 100)
  - Racha de días con tareas completadas

Todo aquí son funciones PURAS: reciben los registros ya cargados y devuelven
un número. No tocan la BD ni guardan estado entre llamadas. El "hoy" y la zona
horaria se pasan como argumentos (los pone la sesión del usuario); si no se
pasan, se usa el reloj y la zona por defecto.

Los registros pueden ser objetos del ORM o diccionarios (con claves
snake_case o camelCase), así se pueden calcular también sobre exportaciones.
"""

import logging
import math
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import pytz

from models import MilestoneType

logger = logging.getLogger("growthloop.metrics")

# ─────────────────────────────────────────────────────────────────────────────
# CONFIGURACIÓN
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/Madrid")
DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "es")

# Etiquetas cortas de los días, la semana empieza en lunes
WEEKDAY_LABELS = {
    "es": ["Lun", "Mar", "Mié", "Jue", "Vie", "Sáb", "Dom"],
    "en": ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"],
    "zh": ["一", "二", "三", "四", "五", "六", "日"],
}

# Pesos de la energía diaria (suman 100)
MOOD_POINTS_PER_LEVEL = 8    # mood 1-5 → 8-40 puntos
ENGAGEMENT_BONUS = 20        # escribir en el diario ese día
TASK_COMPLETION_WEIGHT = 40  # % de tareas del día completadas → 0-40 puntos
BASELINE_ENERGY = 10
# BASELINE_ENERGY → día sin actividad; se distingue de un 0 "real"

STREAK_LOOKBACK_DAYS = 365

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


# =============================================================================
# ===================== UTILIDADES ============================================
# =============================================================================

def _field(record, *names, default=None):
    """Lee el primer campo presente en un objeto o en un diccionario"""
    for name in names:
        if isinstance(record, dict):
            if record.get(name) is not None:
                return record[name]
        else:
            value = getattr(record, name, None)
            if value is not None:
                return value
    return default


def round_half_up(value: float) -> int:
    """Redondeo escolar: 2.5 → 3, -2.5 → -2 (round() de Python redondea al par)"""
    return int(math.floor(value + 0.5))


def clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def get_timezone(tz=None):
    """
    Devuelve un tzinfo de pytz.
    Acepta un tzinfo ya construido, un nombre IANA o None (zona por defecto).
    """
    if tz is None:
        return pytz.timezone(DEFAULT_TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def local_today(tz=None) -> date:
    """Fecha de hoy en la zona del usuario"""
    return datetime.now(get_timezone(tz)).date()


def local_date_from_millis(millis, tz=None) -> date:
    """Convierte un epoch en milisegundos al día natural en la zona dada"""
    return datetime.fromtimestamp(millis / 1000, get_timezone(tz)).date()


def _resolve_today(today: Optional[date], tz):
    tz = get_timezone(tz)
    if today is None:
        today = datetime.now(tz).date()
    elif isinstance(today, datetime):
        today = today.date()
    return today, tz


def days_remaining(deadline_millis: int, now_millis: int) -> int:
    """Días que faltan hasta la fecha límite (redondeando hacia arriba)"""
    return math.ceil((deadline_millis - now_millis) / MILLIS_PER_DAY)


# =============================================================================
# ===================== PROGRESO DE MILESTONES ================================
# =============================================================================

@dataclass(frozen=True)
class MilestoneValues:
    """Valores de un milestone con todos los huecos ya rellenos"""
    type: str
    current_value: float
    target_value: float
    start_value: float


def _number(value, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def normalize_milestone(record) -> MilestoneValues:
    """
    Rellena los campos que faltan en registros antiguos:
      type → numeric, current → 0, target → 100, start → 0
    Un tipo desconocido se trata como numeric.
    """
    raw_type = _field(record, "type")
    raw_type = getattr(raw_type, "value", raw_type)
    known_types = {t.value for t in MilestoneType}
    milestone_type = raw_type if raw_type in known_types else MilestoneType.numeric.value

    return MilestoneValues(
        type=milestone_type,
        current_value=_number(_field(record, "current_value", "currentValue"), 0.0),
        target_value=_number(_field(record, "target_value", "targetValue"), 100.0),
        start_value=_number(_field(record, "start_value", "startValue"), 0.0),
    )


def _ratio_progress(numerator: float, denominator: float) -> int:
    """numerator / denominator como porcentaje; la razón se acota a [0, 1] antes de multiplicar"""
    ratio = numerator / denominator
    if math.isnan(ratio):
        return 0
    return safe_progress(max(0.0, min(1.0, ratio)) * 100)


def safe_progress(value) -> int:
    """Un porcentaje listo para mostrar: entero en [0, 100]; NaN o infinito → 0"""
    if value is None:
        return 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return clamp(round_half_up(value))


def compute_progress(milestone) -> int:
    """
    Porcentaje de avance de un milestone (entero 0-100).

      self-rating → current ES el porcentaje
      count       → current / target (target <= 0 → 0)
      numeric     → (current - start) / (target - start)
                    si start == target → 100 si ya se alcanzó, si no 0

    Nunca lanza excepciones: si algún valor que usa la fórmula no es finito,
    devuelve 0.
    """
    values = milestone if isinstance(milestone, MilestoneValues) else normalize_milestone(milestone)
    current, target, start = values.current_value, values.target_value, values.start_value

    if values.type == MilestoneType.self_rating.value:
        return safe_progress(current)

    if values.type == MilestoneType.count.value:
        if not (math.isfinite(current) and math.isfinite(target)):
            return 0
        if target <= 0:
            return 0
        return _ratio_progress(current, target)

    if not all(math.isfinite(v) for v in (current, target, start)):
        return 0
    value_range = target - start
    if value_range == 0:
        return 100 if current >= target else 0
    if math.isfinite(value_range) and math.isfinite(current - start):
        return _ratio_progress(current - start, value_range)
    # Valores enormes: con mitades las restas ya no se desbordan
    return _ratio_progress(current / 2 - start / 2, target / 2 - start / 2)


# =============================================================================
# ===================== ENERGÍA SEMANAL =======================================
# =============================================================================

@dataclass(frozen=True)
class EnergyPoint:
    """Una barra del gráfico semanal"""
    day: str
    value: int


def _weekday_labels(locale: Optional[str]) -> list[str]:
    return WEEKDAY_LABELS.get(locale or DEFAULT_LOCALE) or WEEKDAY_LABELS["es"]


def _todos_by_day(todos, tz) -> dict:
    by_day = {}
    for todo in todos:
        due = _field(todo, "due_date", "dueDate")
        if due is None:
            continue
        try:
            day = local_date_from_millis(due, tz)
        except (ValueError, OverflowError, OSError):
            logger.debug(f"Fecha límite fuera de rango, se ignora: {due}")
            continue
        by_day.setdefault(day, []).append(todo)
    return by_day


def _journals_by_date(journals) -> dict:
    by_date = {}
    for journal in journals:
        # Si hubiera dos journals para la misma fecha, vale el primero
        by_date.setdefault(_field(journal, "date"), journal)
    return by_date


def day_energy(journal, day_todos) -> int:
    """
    Energía de un solo día (0-100):
      ánimo medio × 8        (0-40)
      + 20 si escribió algo  (0-20)
      + % tareas hechas × 40 (0-40)
    Sin ninguna actividad → BASELINE_ENERGY.
    """
    energy = 0
    has_activity = False

    mood_entries = list(_field(journal, "mood_entries", "moodEntries", default=[])) if journal else []
    answers = list(_field(journal, "answers", default=[])) if journal else []

    # 1. Ánimo: la media, no la suma, si hay varios registros
    if mood_entries:
        avg_mood = sum(_field(e, "mood", default=0) for e in mood_entries) / len(mood_entries)
        energy += round_half_up(avg_mood * MOOD_POINTS_PER_LEVEL)
        has_activity = True

    # 2. Bonus por escribir en el diario
    if mood_entries or answers:
        energy += ENGAGEMENT_BONUS
        has_activity = True

    # 3. Tareas con fecha límite ese día (el estado "completado" es el actual)
    if day_todos:
        completed = sum(1 for t in day_todos if _field(t, "completed", default=False))
        energy += round_half_up(completed / len(day_todos) * TASK_COMPLETION_WEIGHT)
        has_activity = True

    if not has_activity:
        energy = BASELINE_ENERGY

    return clamp(energy)


def compute_weekly_energy(todos, journals, today: Optional[date] = None, tz=None,
                          locale: Optional[str] = None) -> list[EnergyPoint]:
    """
    Energía de los 7 días que terminan hoy (el más antiguo primero, hoy el último).

    Las tareas se asignan a un día por su fecha límite (due_date) en la zona
    del usuario; los journals por su campo date ("YYYY-MM-DD").
    """
    today, tz = _resolve_today(today, tz)
    labels = _weekday_labels(locale)
    todos_by_day = _todos_by_day(todos, tz)
    journals_by_date = _journals_by_date(journals)

    week = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        value = day_energy(journals_by_date.get(day.isoformat()), todos_by_day.get(day, []))
        week.append(EnergyPoint(day=labels[day.weekday()], value=value))

    logger.debug(f"Energía semanal hasta {today}: {[p.value for p in week]}")
    return week


# =============================================================================
# ===================== RACHA =================================================
# =============================================================================

def completed_days(todos, tz=None) -> set:
    """Días (locales) con al menos una tarea completada con fecha límite ese día"""
    days = set()
    for todo in todos:
        due = _field(todo, "due_date", "dueDate")
        if due is None or not _field(todo, "completed", default=False):
            continue
        try:
            days.add(local_date_from_millis(due, get_timezone(tz)))
        except (ValueError, OverflowError, OSError):
            logger.debug(f"Fecha límite fuera de rango, se ignora: {due}")
    return days


def compute_streak(todos, today: Optional[date] = None, tz=None) -> int:
    """
    Días seguidos, contando hacia atrás desde hoy, con alguna tarea completada.

    HOY es opcional: si todavía no ha completado nada hoy, la racha no se
    rompe y se empieza a contar desde ayer. Cualquier otro día sin tareas
    completadas corta la racha. Se miran como máximo 365 días.
    """
    today, tz = _resolve_today(today, tz)
    days = completed_days(todos, tz)

    streak = 0
    for offset in range(STREAK_LOOKBACK_DAYS):
        if today - timedelta(days=offset) in days:
            streak += 1
        elif offset > 0:
            break

    logger.debug(f"Racha hasta {today}: {streak} días")
    return streak


# =============================================================================
# ===================== DASHBOARD =============================================
# =============================================================================

def find_focus_todo(todos):
    """La primera tarea marcada como foco que aún no está completada"""
    for todo in todos:
        if _field(todo, "is_focus", "isFocus", default=False) and not _field(todo, "completed", default=False):
            return todo
    return None
