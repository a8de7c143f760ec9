import logging
from flask import Blueprint, request, jsonify
from flasgger import swag_from
from models import Tenant
from clinic_db.appointment_service import (
    APPOINTMENT_NOT_FOUND,
    APPOINTMENT_STATUSES,
    book_appointment,
    book_my_appointment,
    delete_appointment,
    get_appointment,
    list_clinic_appointments,
    list_patient_appointments,
    list_requested_appointments,
    list_todays_appointments,
    reschedule_appointment,
    update_appointment_status,
)

logger = logging.getLogger(__name__)

routes = Blueprint("routes", __name__)

# Schéma commun du corps d'une réservation
BOOKING_BODY = {
    'name': 'body',
    'in': 'body',
    'required': True,
    'schema': {
        'type': 'object',
        'properties': {
            'doctor_id': {'type': 'integer'},
            'patient_id': {'type': 'integer'},
            'appointment_date': {'type': 'string', 'format': 'date'},
            'schedule': {'type': 'string'},
            'remarks': {'type': 'string'},
            'status': {'type': 'integer'}
        },
        'example': {
            'doctor_id': 3,
            'patient_id': 12,
            'appointment_date': '2026-11-02',
            'schedule': '09:00',
            'remarks': 'Follow-up visit'
        }
    }
}

INVALID_STATUS_MESSAGE = "Invalid status. Expected one of 1, 2, 3, 4"

CLINIC_ID = {
    'name': 'clinic_id',
    'in': 'path',
    'type': 'integer',
    'required': True,
    'description': 'ID of the clinic (tenant)'
}


def _server_error(e, context):
    logger.exception("Erreur de route (%s)", context)
    return jsonify({"success": False, "message": str(e)}), 500


# Route de la page d'accueil
@routes.route('/')
@swag_from({
    'tags': ['Accueil'],
    'responses': {
        200: {
            'description': "Le service de réservation est disponible"
        }
    }
})
def home():
    return jsonify({"message": "Clinic booking service is running"})


# Récupérer toutes les cliniques de l'annuaire
@routes.route("/api/tenants", methods=["GET"])
@swag_from({
    'tags': ['Tenants'],
    'summary': "Lister les cliniques de l'annuaire",
    'responses': {
        200: {
            'description': "Liste des cliniques",
            'examples': {
                'application/json': [
                    {
                        "id": 60,
                        "clinic_name": "Klinik Sejahtera",
                        "database_name": "clinic_60",
                        "status": "active"
                    }
                ]
            }
        }
    }
})
def get_tenants():
    try:
        tenants = Tenant.query.order_by(Tenant.id).all()
    except Exception as e:
        logger.exception("Erreur lors de la lecture des tenants")
        return jsonify({"error": str(e)}), 500
    return jsonify([t.to_dict() for t in tenants])


# Récupérer une clinique par son ID
@routes.route("/api/tenants/<int:tenant_id>", methods=["GET"])
@swag_from({
    'tags': ['Tenants'],
    'parameters': [
        {
            'name': 'tenant_id',
            'in': 'path',
            'type': 'integer',
            'required': True,
            'description': 'ID of the clinic'
        }
    ],
    'responses': {
        200: {'description': 'Clinic details'},
        404: {
            'description': 'Clinic not found',
            'examples': {'application/json': {"message": "Clinic not found"}}
        }
    }
})
def get_tenant(tenant_id):
    try:
        tenant = Tenant.query.filter_by(id=tenant_id).first()
    except Exception as e:
        logger.exception("Erreur lors de la lecture du tenant %s", tenant_id)
        return jsonify({"error": str(e)}), 500

    if tenant is None:
        return jsonify({"message": "Clinic not found"}), 404
    return jsonify(tenant.to_dict())


# Réserver un rendez-vous dans une clinique
@routes.route("/api/clinics/<int:clinic_id>/appointments", methods=["POST"])
@swag_from({
    'tags': ['Appointments'],
    'summary': 'Réserver un rendez-vous',
    'parameters': [CLINIC_ID, BOOKING_BODY],
    'responses': {
        200: {
            'description': "Résultat de la réservation (succès ou échec dans le corps)",
            'examples': {
                'application/json': {
                    "success": False,
                    "message": "This time slot is already booked"
                }
            }
        },
        500: {'description': 'Unexpected error'}
    }
})
def create_appointment(clinic_id):
    try:
        result = book_appointment(clinic_id, request.get_json(silent=True) or {})
    except Exception as e:
        return _server_error(e, "book appointment")
    return jsonify(result)


# Le patient réserve lui-même son rendez-vous (statut "requested")
@routes.route("/api/clinics/<int:clinic_id>/appointments/my-appointments", methods=["POST"])
@swag_from({
    'tags': ['Appointments'],
    'summary': 'Réservation faite par le patient',
    'parameters': [CLINIC_ID, BOOKING_BODY],
    'responses': {
        200: {'description': "Résultat de la réservation"},
        500: {'description': 'Unexpected error'}
    }
})
def create_my_appointment(clinic_id):
    try:
        result = book_my_appointment(clinic_id, request.get_json(silent=True) or {})
    except Exception as e:
        return _server_error(e, "my appointments")
    return jsonify(result)


# Récupérer tous les rendez-vous d'une clinique
@routes.route("/api/clinics/<int:clinic_id>/appointments", methods=["GET"])
@swag_from({
    'tags': ['Appointments'],
    'summary': "Lister les rendez-vous d'une clinique",
    'parameters': [
        CLINIC_ID,
        {'name': 'start_date', 'in': 'query', 'type': 'string', 'required': False,
         'description': 'Start of the date range (YYYY-MM-DD)'},
        {'name': 'end_date', 'in': 'query', 'type': 'string', 'required': False,
         'description': 'End of the date range (YYYY-MM-DD)'},
        {'name': 'status', 'in': 'query', 'type': 'integer', 'required': False,
         'description': '1 approved, 2 active, 3 cancelled, 4 requested'},
        {'name': 'doctor_id', 'in': 'query', 'type': 'integer', 'required': False,
         'description': 'Only appointments of this doctor'},
        {'name': 'date', 'in': 'query', 'type': 'string', 'required': False,
         'description': 'Only appointments on this day (YYYY-MM-DD)'}
    ],
    'responses': {
        200: {
            'description': "Rendez-vous triés par date puis par création (décroissant)",
            'examples': {
                'application/json': {
                    "success": True,
                    "data": [
                        {
                            "id": 1,
                            "appointment_id": "APT12345678042",
                            "doctor_id": 3,
                            "patient_id": 12,
                            "appointment_date": "2026-11-02",
                            "schedule": "09:00",
                            "status": 4,
                            "doctor_name": "Dr. Aina",
                            "patient_name": "John Doe",
                            "patient_phone": "0123456789"
                        }
                    ],
                    "clinic": {"id": 60, "name": "Klinik Sejahtera", "database": "clinic_60"},
                    "count": 1
                }
            }
        }
    }
})
def get_clinic_appointments(clinic_id):
    # Un filtre illisible est refusé plutôt qu'ignoré
    status = request.args.get('status', type=int)
    if 'status' in request.args and status not in APPOINTMENT_STATUSES:
        return jsonify({"success": False, "message": INVALID_STATUS_MESSAGE}), 400
    doctor_id = request.args.get('doctor_id', type=int)
    if 'doctor_id' in request.args and doctor_id is None:
        return jsonify({"success": False, "message": "Invalid doctor_id"}), 400

    try:
        result = list_clinic_appointments(
            clinic_id,
            request.args.get('start_date') or None,
            request.args.get('end_date') or None,
            status,
            doctor_id=doctor_id,
            appointment_date=request.args.get('date') or None,
        )
    except Exception as e:
        return _server_error(e, "get appointments")
    return jsonify(result)


# Récupérer les demandes de rendez-vous en attente
@routes.route("/api/clinics/<int:clinic_id>/appointments/requested", methods=["GET"])
@swag_from({
    'tags': ['Appointments'],
    'summary': 'Lister les demandes en attente (statut 4)',
    'parameters': [CLINIC_ID],
    'responses': {200: {'description': 'Requested appointments'}}
})
def get_requested_appointments(clinic_id):
    try:
        result = list_requested_appointments(
            clinic_id,
            request.args.get('start_date') or None,
            request.args.get('end_date') or None,
        )
    except Exception as e:
        return _server_error(e, "requested appointments")
    return jsonify(result)


"""
Récupère tous les rendez-vous d'un patient dans une clinique, avec le nom du médecin.
"""
@routes.route("/api/clinics/<int:clinic_id>/appointments/patient/<int:patient_id>", methods=["GET"])
@swag_from({
    'tags': ['Appointments'],
    'parameters': [
        CLINIC_ID,
        {'name': 'patient_id', 'in': 'path', 'type': 'integer', 'required': True,
         'description': 'ID of the patient'}
    ],
    'responses': {200: {'description': 'List of appointments for a specific patient'}}
})
def get_patient_appointments(clinic_id, patient_id):
    try:
        result = list_patient_appointments(clinic_id, patient_id)
    except Exception as e:
        return _server_error(e, "patient appointments")
    return jsonify(result)


# Mettre à jour le statut d'un rendez-vous (approbation, annulation...)
@routes.route("/api/clinics/<int:clinic_id>/appointments/<int:appointment_id>/status", methods=["PUT"])
@swag_from({
    'tags': ['Appointments'],
    'parameters': [
        CLINIC_ID,
        {'name': 'appointment_id', 'in': 'path', 'type': 'integer', 'required': True,
         'description': 'ID of the appointment to update'},
        {
            'name': 'body',
            'in': 'body',
            'required': True,
            'schema': {
                'type': 'object',
                'properties': {
                    'status': {'type': 'integer'},
                    'schedule': {'type': 'string'}
                },
                'example': {'status': 1, 'schedule': '10:30'}
            }
        }
    ],
    'responses': {
        200: {
            'description': 'Status updated',
            'examples': {
                'application/json': {
                    "success": True,
                    "message": "Appointment status updated to 1",
                    "affected_rows": 1
                }
            }
        },
        400: {'description': 'Invalid status'}
    }
})
def update_status(clinic_id, appointment_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    status = data.get("status")

    try:
        status = int(status)
    except (TypeError, ValueError):
        status = None
    if status not in APPOINTMENT_STATUSES:
        return jsonify({"success": False, "message": INVALID_STATUS_MESSAGE}), 400

    try:
        result = update_appointment_status(clinic_id, appointment_id, status, data.get("schedule"))
    except Exception as e:
        return _server_error(e, "update status")
    return jsonify(result)


# Supprimer un rendez-vous
@routes.route("/api/clinics/<int:clinic_id>/appointments/<int:appointment_id>", methods=["DELETE"])
@swag_from({
    'tags': ['Appointments'],
    'parameters': [
        CLINIC_ID,
        {'name': 'appointment_id', 'in': 'path', 'type': 'integer', 'required': True,
         'description': 'ID of the appointment to delete'}
    ],
    'responses': {
        200: {
            'description': 'Appointment deleted',
            'examples': {'application/json': {"success": True, "message": "Appointment deleted", "affected_rows": 1}}
        }
    }
})
def remove_appointment(clinic_id, appointment_id):
    try:
        result = delete_appointment(clinic_id, appointment_id)
    except Exception as e:
        return _server_error(e, "delete appointment")
    return jsonify(result)


# Rendez-vous du jour dans une clinique
@routes.route("/api/clinics/<int:clinic_id>/appointments/today", methods=["GET"])
@swag_from({
    'tags': ['Appointments'],
    'summary': "Lister les rendez-vous du jour",
    'parameters': [CLINIC_ID],
    'responses': {200: {'description': "Today's appointments"}}
})
def get_todays_appointments(clinic_id):
    try:
        result = list_todays_appointments(clinic_id)
    except Exception as e:
        return _server_error(e, "today appointments")
    return jsonify(result)


# Récupérer un rendez-vous par son ID
@routes.route("/api/clinics/<int:clinic_id>/appointments/<int:appointment_id>", methods=["GET"])
@swag_from({
    'tags': ['Appointments'],
    'parameters': [
        CLINIC_ID,
        {'name': 'appointment_id', 'in': 'path', 'type': 'integer', 'required': True,
         'description': 'ID of the appointment'}
    ],
    'responses': {
        200: {'description': 'Appointment details'},
        404: {
            'description': 'Appointment not found',
            'examples': {'application/json': {"success": False, "message": "Appointment not found"}}
        }
    }
})
def get_single_appointment(clinic_id, appointment_id):
    try:
        result = get_appointment(clinic_id, appointment_id)
    except Exception as e:
        return _server_error(e, "get appointment")

    if result.get("message") == APPOINTMENT_NOT_FOUND:
        return jsonify(result), 404
    return jsonify(result)


# Déplacer un rendez-vous (nouvelle date et nouveau créneau)
@routes.route("/api/clinics/<int:clinic_id>/appointments/<int:appointment_id>/reschedule", methods=["PATCH"])
@swag_from({
    'tags': ['Appointments'],
    'parameters': [
        CLINIC_ID,
        {'name': 'appointment_id', 'in': 'path', 'type': 'integer', 'required': True,
         'description': 'ID of the appointment to reschedule'},
        {
            'name': 'body',
            'in': 'body',
            'required': True,
            'schema': {
                'type': 'object',
                'properties': {
                    'appointment_date': {'type': 'string', 'format': 'date'},
                    'schedule': {'type': 'string'}
                },
                'example': {'appointment_date': '2026-11-09', 'schedule': '14:30'}
            }
        }
    ],
    'responses': {
        200: {
            'description': 'Appointment rescheduled',
            'examples': {
                'application/json': {
                    "success": True,
                    "message": "Appointment rescheduled successfully",
                    "data": {"id": 7, "appointment_date": "2026-11-09", "schedule": "14:30"}
                }
            }
        },
        400: {'description': 'Missing or past date/time, or slot already booked'},
        404: {'description': 'Appointment not found'}
    }
})
def reschedule(clinic_id, appointment_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    try:
        result = reschedule_appointment(
            clinic_id, appointment_id, data.get("appointment_date"), data.get("schedule")
        )
    except Exception as e:
        return _server_error(e, "reschedule appointment")

    if result["success"]:
        return jsonify(result)
    if result["message"] == APPOINTMENT_NOT_FOUND:
        return jsonify(result), 404
    return jsonify(result), 400
