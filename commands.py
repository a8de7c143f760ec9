import click
from flask.cli import AppGroup
from clinic_db.appointment_service import cancel_expired_appointments

appointments_cli = AppGroup("appointments", help="Maintenance des rendez-vous des cliniques.")


# Annuler les rendez-vous actifs dont la date est passée
@appointments_cli.command("cancel-expired")
@click.argument("clinic_id", type=int)
def cancel_expired(clinic_id):
    result = cancel_expired_appointments(clinic_id)
    if not result["success"]:
        raise click.ClickException(result["message"])
    click.echo(result["message"])
