import time
import random
import logging
from datetime import date, datetime, timedelta
from datetime import time as dtime

from sqlalchemy import column, insert, select, table, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from clinic_db.connection import clinic_db
from clinic_db.errors import TenantResolutionError
from clinic_db.tenant_resolver import resolve_tenant

logger = logging.getLogger(__name__)

# Codes de statut d'un rendez-vous
STATUS_APPROVED = 1
STATUS_ACTIVE = 2
STATUS_CANCELLED = 3
STATUS_REQUESTED = 4
APPOINTMENT_STATUSES = (STATUS_APPROVED, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_REQUESTED)

# Un créneau est occupé tant qu'un rendez-vous actif le référence
ACTIVE_STATUSES = (STATUS_APPROVED, STATUS_ACTIVE)

REQUIRED_FIELDS = ("doctor_id", "patient_id", "appointment_date", "schedule")
SLOT_COLUMNS = ("doctor_id", "appointment_date", "schedule", "status")
SLOT_TAKEN_MESSAGE = "This time slot is already booked"
APPOINTMENT_NOT_FOUND = "Appointment not found"
EXPIRED_REASON = "Automatically cancelled - appointment date passed"


def generate_appointment_id():
    # APT + 8 derniers chiffres du timestamp (ms) + 3 chiffres aléatoires
    timestamp = str(int(time.time() * 1000))
    return f"APT{timestamp[-8:]}{random.randrange(1000):03d}"


def serialize_row(row):
    if row is None:
        return None

    data = {}
    for key, value in dict(row).items():
        if isinstance(value, datetime):
            value = value.strftime("%Y-%m-%d %H:%M:%S")
        elif isinstance(value, date):
            value = value.strftime("%Y-%m-%d")
        elif isinstance(value, dtime):
            value = value.strftime("%H:%M:%S")
        elif isinstance(value, timedelta):
            # PyMySQL renvoie les colonnes TIME sous forme de timedelta
            seconds = int(value.total_seconds())
            value = f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"
        data[key] = value
    return data


def _failure(message, **extra):
    return {"success": False, "message": message, **extra}


def _driver_details(exc):
    orig = getattr(exc, "orig", None)
    args = getattr(orig, "args", ())
    # PyMySQL : (code numérique, message) ; sqlite3 : (message,)
    if len(args) >= 2 and isinstance(args[0], int):
        return {"error_code": str(args[0]), "sql_message": str(args[1])}
    return {
        "error_code": getattr(orig, "sqlite_errorname", None) or type(orig).__name__,
        "sql_message": str(orig) if orig is not None else str(exc),
    }


def _storage_failure(exc):
    details = _driver_details(exc)
    return _failure(details["sql_message"], **details)


def _appointment_table(columns):
    return table("appointment", *(column(name) for name in sorted(columns)))


def _ordering(columns, prefix="a."):
    order = [f"{prefix}appointment_date DESC"]
    if "created_at" in columns:
        order.append(f"{prefix}created_at DESC")
    return "ORDER BY " + ", ".join(order)


def _clinic_summary(tenant):
    return {"id": tenant.id, "name": tenant.clinic_name, "database": tenant.database_name}


def _slot_taken(conn, appointment, columns, appointment_data, exclude_id=None):
    missing = [name for name in ("id",) + SLOT_COLUMNS if name not in columns]
    if missing:
        logger.warning("Vérification du créneau ignorée, colonnes absentes : %s", missing)
        return False

    stmt = (
        select(appointment.c.id)
        .where(
            appointment.c.doctor_id == appointment_data["doctor_id"],
            appointment.c.appointment_date == appointment_data["appointment_date"],
            appointment.c.schedule == appointment_data["schedule"],
            appointment.c.status.in_(ACTIVE_STATUSES),
        )
        .limit(1)
        .with_for_update()
    )
    if exclude_id is not None:
        # Un rendez-vous déplacé ne bloque pas son propre créneau
        stmt = stmt.where(appointment.c.id != exclude_id)
    try:
        return conn.execute(stmt).first() is not None
    except DBAPIError as e:
        logger.warning("Vérification du créneau ignorée : %s", e.orig)
        return False


def _insert_appointment(conn, tenant, appointment_data):
    # Champs obligatoires
    for field in REQUIRED_FIELDS:
        if not appointment_data.get(field):
            return _failure(f"Missing required field: {field}")

    columns = clinic_db.columns(conn, tenant)
    appointment = _appointment_table(columns)

    # Vérifier la disponibilité du créneau (lecture verrouillante sous MySQL)
    if _slot_taken(conn, appointment, columns, appointment_data):
        return _failure(SLOT_TAKEN_MESSAGE)

    appointment_id = generate_appointment_id()
    values = {
        "appointment_id": appointment_id,
        "doctor_id": appointment_data["doctor_id"],
        "patient_id": appointment_data["patient_id"],
        "schedule": appointment_data["schedule"],
        "remarks": appointment_data.get("remarks") or "",
        "appointment_date": appointment_data["appointment_date"],
        "status": appointment_data.get("status") or STATUS_REQUESTED,
    }
    if "created_at" in columns:
        values["created_at"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    # N'insérer que les colonnes présentes dans le schéma de cette clinique
    dropped = [name for name in values if name not in columns]
    if dropped:
        logger.warning("Colonnes absentes dans %s.appointment : %s", tenant.database_name, dropped)
    insertable = {name: value for name, value in values.items() if name in columns}

    try:
        result = conn.execute(insert(appointment).values(**insertable))
        insert_id = result.lastrowid
        conn.commit()
    except IntegrityError as e:
        conn.rollback()
        # Contrainte unique sur le créneau atteinte par une réservation concurrente
        if _slot_taken(conn, appointment, columns, appointment_data):
            return _failure(SLOT_TAKEN_MESSAGE, **_driver_details(e))
        raise

    logger.info("Rendez-vous %s inséré avec l'ID %s", appointment_id, insert_id)

    row = conn.execute(
        text("SELECT * FROM appointment WHERE id = :id"), {"id": insert_id}
    ).mappings().first()

    return {
        "success": True,
        "message": "Appointment booked successfully",
        "data": serialize_row(row),
        "appointment_id": appointment_id,
        "insert_id": insert_id,
    }


def book_appointment(tenant_id, appointment_data):
    """Réserve un créneau dans la base de la clinique.

    Retourne toujours un dictionnaire avec ``success`` ; seules les erreurs
    de l'annuaire lui-même remontent sous forme d'exception.
    """
    logger.info("Réservation d'un rendez-vous pour la clinique %s", tenant_id)
    if not isinstance(appointment_data, dict):
        appointment_data = {}

    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    try:
        with clinic_db.tenant_connection(tenant) as conn:
            return _insert_appointment(conn, tenant, appointment_data)
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de la réservation pour la clinique %s : %s", tenant_id, e.orig)
        return _storage_failure(e)


def book_my_appointment(tenant_id, appointment_data):
    # Réservation faite par le patient lui-même : toujours "requested"
    appointment_data = dict(appointment_data) if isinstance(appointment_data, dict) else {}
    appointment_data["status"] = STATUS_REQUESTED
    appointment_data["remarks"] = appointment_data.get("remarks") or ""
    return book_appointment(tenant_id, appointment_data)


def _read_appointments(conn, joined_sql, simple_sql, params):
    try:
        return conn.execute(text(joined_sql), params).mappings().all()
    except DBAPIError as e:
        # Schéma sans les tables ou colonnes de jointure
        logger.warning("Requête simplifiée utilisée : %s", e.orig)
        return conn.execute(text(simple_sql), params).mappings().all()


def list_clinic_appointments(tenant_id, start_date=None, end_date=None, status=None,
                             doctor_id=None, appointment_date=None):
    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    conditions, params = [], {}
    if start_date and end_date:
        conditions.append("a.appointment_date BETWEEN :start_date AND :end_date")
        params.update(start_date=start_date, end_date=end_date)
    if status is not None:
        conditions.append("a.status = :status")
        params["status"] = status
    if doctor_id is not None:
        conditions.append("a.doctor_id = :doctor_id")
        params["doctor_id"] = doctor_id
    if appointment_date:
        conditions.append("a.appointment_date = :appointment_date")
        params["appointment_date"] = appointment_date
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    try:
        with clinic_db.tenant_connection(tenant) as conn:
            order = _ordering(clinic_db.columns(conn, tenant))
            joined_sql = f"""
                SELECT a.*,
                       d.name AS doctor_name,
                       p.name AS patient_name,
                       p.mobile_no AS patient_phone
                FROM appointment a
                LEFT JOIN staff d ON a.doctor_id = d.id
                LEFT JOIN patient p ON a.patient_id = p.id
                {where}
                {order}
            """
            simple_sql = f"SELECT a.* FROM appointment a {where} {order}"
            rows = _read_appointments(conn, joined_sql, simple_sql, params)
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de la lecture des rendez-vous de la clinique %s : %s", tenant_id, e.orig)
        return _storage_failure(e)

    data = [serialize_row(row) for row in rows]
    return {
        "success": True,
        "data": data,
        "clinic": _clinic_summary(tenant),
        "count": len(data),
    }


def list_requested_appointments(tenant_id, start_date=None, end_date=None):
    return list_clinic_appointments(tenant_id, start_date, end_date, status=STATUS_REQUESTED)


def list_todays_appointments(tenant_id, today=None):
    today = today or date.today()
    return list_clinic_appointments(tenant_id, appointment_date=today.strftime("%Y-%m-%d"))


def list_patient_appointments(tenant_id, patient_id):
    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    joined_sql = """
        SELECT a.*, d.name AS doctor_name, d.qualification
        FROM appointment a
        LEFT JOIN staff d ON a.doctor_id = d.id
        WHERE a.patient_id = :patient_id
        ORDER BY a.appointment_date DESC
    """
    simple_sql = """
        SELECT a.* FROM appointment a
        WHERE a.patient_id = :patient_id
        ORDER BY a.appointment_date DESC
    """
    try:
        with clinic_db.tenant_connection(tenant) as conn:
            rows = _read_appointments(conn, joined_sql, simple_sql, {"patient_id": patient_id})
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de la lecture des rendez-vous du patient %s : %s", patient_id, e.orig)
        return _storage_failure(e)

    data = [serialize_row(row) for row in rows]
    return {"success": True, "data": data, "patient_id": patient_id, "count": len(data)}


def get_appointment(tenant_id, appointment_id):
    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    joined_sql = """
        SELECT a.*,
               d.name AS doctor_name,
               p.name AS patient_name,
               p.mobile_no AS patient_phone
        FROM appointment a
        LEFT JOIN staff d ON a.doctor_id = d.id
        LEFT JOIN patient p ON a.patient_id = p.id
        WHERE a.id = :id
    """
    simple_sql = "SELECT a.* FROM appointment a WHERE a.id = :id"
    try:
        with clinic_db.tenant_connection(tenant) as conn:
            rows = _read_appointments(conn, joined_sql, simple_sql, {"id": appointment_id})
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de la lecture du rendez-vous %s : %s", appointment_id, e.orig)
        return _storage_failure(e)

    if not rows:
        return _failure(APPOINTMENT_NOT_FOUND)
    return {"success": True, "data": serialize_row(rows[0])}


def _parse_schedule(schedule):
    # "09:30", "09:30:00" ou un datetime complet
    for fmt in ("%H:%M", "%H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(str(schedule), fmt).time()
        except ValueError:
            continue
    return None


def _check_new_slot(appointment_date, schedule, now):
    if not appointment_date or not schedule:
        return "Both appointment_date and schedule are required"

    try:
        new_date = datetime.strptime(str(appointment_date), "%Y-%m-%d").date()
    except ValueError:
        return "Invalid appointment_date, expected YYYY-MM-DD"
    new_time = _parse_schedule(schedule)
    if new_time is None:
        return "Invalid schedule, expected HH:MM"

    if new_date < now.date():
        return "Cannot reschedule to a past date"
    if new_date == now.date() and new_time < now.time():
        return "Cannot reschedule to a past time on today's date"
    return None


def reschedule_appointment(tenant_id, appointment_id, appointment_date, schedule, now=None):
    """Déplace un rendez-vous vers une nouvelle date et un nouveau créneau.

    La nouvelle date ne peut pas être passée ; le créneau doit être libre
    pour le même médecin.
    """
    now = now or datetime.now()
    error = _check_new_slot(appointment_date, schedule, now)
    if error:
        return _failure(error)

    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    try:
        with clinic_db.tenant_connection(tenant) as conn:
            current = conn.execute(
                text("SELECT * FROM appointment WHERE id = :id"), {"id": appointment_id}
            ).mappings().first()
            if current is None:
                return _failure(APPOINTMENT_NOT_FOUND)

            columns = clinic_db.columns(conn, tenant)
            appointment = _appointment_table(columns)
            new_slot = {
                "doctor_id": current["doctor_id"],
                "appointment_date": appointment_date,
                "schedule": schedule,
            }
            if _slot_taken(conn, appointment, columns, new_slot, exclude_id=appointment_id):
                return _failure(SLOT_TAKEN_MESSAGE)

            conn.execute(
                update(appointment)
                .where(appointment.c.id == appointment_id)
                .values(appointment_date=appointment_date, schedule=schedule)
            )
            conn.commit()

            row = conn.execute(
                text("SELECT * FROM appointment WHERE id = :id"), {"id": appointment_id}
            ).mappings().first()
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors du déplacement du rendez-vous %s : %s", appointment_id, e.orig)
        return _storage_failure(e)

    logger.info("Rendez-vous %s déplacé au %s %s", appointment_id, appointment_date, schedule)
    return {
        "success": True,
        "message": "Appointment rescheduled successfully",
        "data": serialize_row(row),
    }


def update_appointment_status(tenant_id, appointment_id, status, schedule=None):
    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    # Approbation avec créneau : statut et créneau dans la même requête
    if schedule and int(status) == STATUS_APPROVED:
        sql = "UPDATE appointment SET status = :status, schedule = :schedule WHERE id = :id"
        params = {"status": status, "schedule": schedule, "id": appointment_id}
    else:
        sql = "UPDATE appointment SET status = :status WHERE id = :id"
        params = {"status": status, "id": appointment_id}

    try:
        with clinic_db.tenant_connection(tenant) as conn:
            affected_rows = conn.execute(text(sql), params).rowcount
            conn.commit()
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de la mise à jour du rendez-vous %s : %s", appointment_id, e.orig)
        return _storage_failure(e)

    return {
        "success": True,
        "message": f"Appointment status updated to {status}",
        "affected_rows": affected_rows,
    }


def delete_appointment(tenant_id, appointment_id):
    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    try:
        with clinic_db.tenant_connection(tenant) as conn:
            affected_rows = conn.execute(
                text("DELETE FROM appointment WHERE id = :id"), {"id": appointment_id}
            ).rowcount
            conn.commit()
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de la suppression du rendez-vous %s : %s", appointment_id, e.orig)
        return _storage_failure(e)

    if affected_rows == 0:
        return _failure(APPOINTMENT_NOT_FOUND, affected_rows=0)
    return {"success": True, "message": "Appointment deleted", "affected_rows": affected_rows}


def cancel_expired_appointments(tenant_id, today=None):
    """Annule les rendez-vous actifs dont la date est passée."""
    today = today or date.today()
    try:
        tenant = resolve_tenant(tenant_id)
    except TenantResolutionError as e:
        return _failure(e.message)

    try:
        with clinic_db.tenant_connection(tenant) as conn:
            columns = clinic_db.columns(conn, tenant)
            appointment = _appointment_table(columns)

            values = {"status": STATUS_CANCELLED}
            if "cancellation_reason" in columns:
                values["cancellation_reason"] = EXPIRED_REASON
            if "auto_cancelled" in columns:
                values["auto_cancelled"] = 1

            stmt = (
                update(appointment)
                .where(
                    appointment.c.status.in_(ACTIVE_STATUSES),
                    appointment.c.appointment_date < today.strftime("%Y-%m-%d"),
                )
                .values(**values)
            )
            affected_rows = conn.execute(stmt).rowcount
            conn.commit()
    except TenantResolutionError as e:
        return _failure(e.message)
    except DBAPIError as e:
        logger.error("Erreur lors de l'annulation automatique pour la clinique %s : %s", tenant_id, e.orig)
        return _storage_failure(e)

    logger.info("%s rendez-vous expirés annulés pour la clinique %s", affected_rows, tenant_id)
    return {
        "success": True,
        "message": f"{affected_rows} expired appointments cancelled",
        "affected_rows": affected_rows,
    }
