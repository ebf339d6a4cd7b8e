"""
Moteur de réconciliation des scans d'assistance.

Traduit un scan (identité décodée + type d'événement) en appels au backend de
registres, et calcule le statut de justification des historiques.

Deux disciplines de stockage :
- mode compteur : lecture puis incrément de la ligne (run, type), puis ajout
  au journal Historial. Un échec du journal après l'écriture du compteur n'annule
  rien : il est signalé comme échec partiel.
- mode normalisé : upsert de l'élève par RUN, puis insertion d'un registro
  immuable. Un atraso d'un élève sans contact d'apoderado lève le drapeau
  consultatif needs_contact_info.

Aucune relance, aucune transaction englobante : chaque appel au backend est
engagé indépendamment.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from qrpases.config import settings
from qrpases.exceptions import (
    AlreadyJustified,
    InvalidEventType,
    InvalidIdentity,
    MissingGuardianName,
    NetworkFailure,
    RecordNotFound,
)
from qrpases.schemas.attendance import (
    TARDY,
    VALID_EVENT_TYPES,
    HistoryEntry,
    JustificationRecord,
    JustificationResult,
    LogEntry,
    RegistrationResult,
    StepResult,
    StudentIdentity,
    TallySummary,
    canonical_event_type,
    composite_key,
)
from qrpases.services.qr_parser import normalize_run, split_full_name
from qrpases.stores.base import NormalizedRecordStore, RecordRef, RecordStore, TallyRecordStore

logger = logging.getLogger(__name__)


def _local_now(now: Optional[datetime] = None) -> datetime:
    """Horloge de référence : celle de l'appareil si fournie, sinon l'horloge serveur locale."""
    tz = ZoneInfo(settings.TIMEZONE)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is not None:
        return now.astimezone(tz)
    return now


def _require_run(run: str) -> str:
    normalized = normalize_run(run)
    if not normalized:
        raise InvalidIdentity("RUN invalide : identité sans RUN.")
    return normalized


# ============================================================
# Enregistrement d'un scan
# ============================================================

def register_event(
    store: RecordStore,
    identity: StudentIdentity,
    event_type: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RegistrationResult:
    """
    Enregistre un atraso ou une inasistencia pour l'élève scanné.

    Lève InvalidIdentity (RUN vide), InvalidEventType (type inconnu)
    ou NetworkFailure (écriture principale en échec).
    """
    run = _require_run(identity.run)
    tipo = canonical_event_type(event_type)
    if tipo is None:
        raise InvalidEventType(f"Type d'événement invalide : {event_type!r}.")

    moment = _local_now(now)
    fecha = moment.date()
    hora = moment.strftime("%H:%M")
    comentario = (comment or "").strip() or None

    if isinstance(store, TallyRecordStore):
        return _register_tally(store, run, identity, tipo, fecha, hora, comentario)
    if isinstance(store, NormalizedRecordStore):
        return _register_normalized(store, run, identity, tipo, fecha, hora, comentario)
    raise TypeError(f"Backend de registres non supporté : {type(store).__name__}")


def _register_tally(
    store: TallyRecordStore,
    run: str,
    identity: StudentIdentity,
    tipo: str,
    fecha: date,
    hora: str,
    comentario: Optional[str],
) -> RegistrationResult:
    fields = {"fecha": fecha, "hora": hora}
    if identity.full_name:
        fields["nombre"] = identity.full_name
    if identity.course:
        fields["curso"] = identity.course

    tally = store.create_or_increment(run, tipo, fields)
    steps = [StepResult(step="create_or_increment", ok=True)]

    partial_failure = False
    try:
        store.append_log(LogEntry(
            run=run,
            nombre=identity.full_name,
            curso=identity.course,
            fecha=fecha,
            hora=hora,
            tipo=tipo,
            comentario=comentario,
        ))
        steps.append(StepResult(step="append_log", ok=True))
    except NetworkFailure as exc:
        partial_failure = True
        steps.append(StepResult(step="append_log", ok=False, detail=exc.message))
        logger.warning(
            "Échec partiel run=%s tipo=%s : compteur à %d mais historial non écrit",
            run, tipo, tally.total_registros,
        )

    logger.info("Scan enregistré (compteur) run=%s tipo=%s total=%d", run, tipo, tally.total_registros)

    return RegistrationResult(
        run=run,
        nombre=tally.nombre or identity.full_name,
        tipo=tipo,
        fecha=fecha,
        hora=hora,
        mode=store.mode,
        total_registros=tally.total_registros,
        partial_failure=partial_failure,
        steps=steps,
    )


def _register_normalized(
    store: NormalizedRecordStore,
    run: str,
    identity: StudentIdentity,
    tipo: str,
    fecha: date,
    hora: str,
    comentario: Optional[str],
) -> RegistrationResult:
    nombres, paterno, materno = split_full_name(identity.full_name)
    student = store.upsert_student(run, {
        "nombres": nombres,
        "apellido_paterno": paterno or None,
        "apellido_materno": materno or None,
        "grado": identity.grade or None,
        "letra": identity.section or None,
    })
    steps = [StepResult(step="upsert_student", ok=True)]

    record = store.insert_attendance(student, {
        "fecha": fecha,
        "hora": hora,
        "tipo": tipo,
        "comentario": comentario,
    })
    steps.append(StepResult(step="insert_attendance", ok=True))

    needs_contact_info = tipo == TARDY and not student.has_contact
    if needs_contact_info:
        logger.debug("Élève %s sans contact d'apoderado : saisie proposée", run)

    logger.info("Scan enregistré (normalisé) run=%s tipo=%s registro=%s", run, tipo, record.registro_id)

    return RegistrationResult(
        run=run,
        nombre=student.nombre_completo,
        tipo=tipo,
        fecha=fecha,
        hora=hora,
        mode=store.mode,
        registro_id=record.registro_id,
        needs_contact_info=needs_contact_info,
        steps=steps,
    )


# ============================================================
# Historial et jointure des justifications
# ============================================================

def join_justifications(
    history: List[HistoryEntry],
    justifications: List[JustificationRecord],
    run: str,
) -> List[HistoryEntry]:
    """
    Jointure par table de hachage sur la clé (run, fecha, hora, tipo) normalisée.

    Seules comptent les justifications du même RUN portant un nom d'apoderado.
    L'ordre de l'historial est conservé.
    """
    run = normalize_run(run)
    index: Dict[Tuple[str, str, str, str], JustificationRecord] = {}
    for just in justifications:
        if normalize_run(just.run) != run or not just.apoderado.strip():
            continue
        index.setdefault(composite_key(just.run, just.fecha, just.hora, just.tipo), just)

    joined: List[HistoryEntry] = []
    for entry in history:
        if normalize_run(entry.run) != run:
            continue
        match = index.get(entry.key())
        joined.append(entry.model_copy(update={
            "justificado": match is not None,
            "apoderado": match.apoderado.strip() if match is not None else None,
            "fecha_justificacion": match.fecha_justificacion if match is not None else None,
        }))
    return joined


def fetch_history(store: RecordStore, run: str) -> List[HistoryEntry]:
    """
    Historial d'un élève, chaque registre décoré de son statut de justification.

    Liste vide = aucun historique (pas une erreur). Tri fecha puis hora
    décroissantes si le backend sait trier, sinon ordre du backend.
    """
    run = _require_run(run)
    entries = store.query_history(run)
    if store.joins_server_side:
        return entries
    return join_justifications(entries, store.query_justifications(run), run)


def fetch_pending(store: RecordStore, run: str) -> List[HistoryEntry]:
    """Registres encore à justifier."""
    return [entry for entry in fetch_history(store, run) if not entry.justificado]


def fetch_summary(store: RecordStore, run: str) -> List[TallySummary]:
    """Total et dernier événement par type (seuls les types présents sont renvoyés)."""
    run = _require_run(run)

    if isinstance(store, TallyRecordStore):
        summaries = []
        for tipo in VALID_EVENT_TYPES:
            tally = store.get_by_run_and_type(run, tipo)
            if tally is not None:
                summaries.append(TallySummary(
                    tipo=tipo,
                    total=tally.total_registros,
                    ultima_fecha=tally.fecha,
                    ultima_hora=tally.hora,
                ))
        return summaries

    grouped: Dict[str, List[HistoryEntry]] = {}
    for entry in store.query_history(run):
        grouped.setdefault(entry.tipo, []).append(entry)

    summaries = []
    for tipo in VALID_EVENT_TYPES:
        entries = grouped.get(tipo)
        if not entries:
            continue
        latest = max(entries, key=lambda e: (e.fecha, e.hora))
        summaries.append(TallySummary(
            tipo=tipo,
            total=len(entries),
            ultima_fecha=latest.fecha,
            ultima_hora=latest.hora,
        ))
    return summaries


# ============================================================
# Justification
# ============================================================

def justify_record(
    store: RecordStore,
    ref: RecordRef,
    guardian_name: str,
    today: Optional[date] = None,
) -> JustificationResult:
    """
    Crée la justification d'un registre.

    Lève MissingGuardianName (nom vide, aucune écriture), RecordNotFound
    (registre cible absent) ou AlreadyJustified (au plus une justification
    par registre).
    """
    guardian = (guardian_name or "").strip()
    if not guardian:
        raise MissingGuardianName("Écrire le nom de l'apoderado.")

    record = store.find_record(ref)
    if record is None:
        raise RecordNotFound("Registro introuvable.")

    if record.justificado or store.find_justification(record) is not None:
        raise AlreadyJustified(f"{record.tipo} du {record.fecha.isoformat()} déjà justifié.")

    fecha_justificacion = today or _local_now().date()
    just = store.insert_justification(record, guardian, fecha_justificacion)

    logger.info(
        "Justification créée run=%s %s %s %s par %s",
        record.run, record.tipo, record.fecha, record.hora, guardian,
    )

    return JustificationResult(
        registro_id=record.registro_id,
        run=record.run,
        fecha=record.fecha,
        hora=record.hora,
        tipo=record.tipo,
        apoderado=just.apoderado,
        fecha_justificacion=just.fecha_justificacion or fecha_justificacion,
    )
