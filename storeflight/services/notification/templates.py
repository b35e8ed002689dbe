"""HTML bodies for the two payment e-mails.

Everything interpolated comes from customer input, so it is escaped.
"""

from html import escape

from storeflight.services.reservations.models import Reservation


def _v(value) -> str:
    if value is None or value == "":
        return "-"
    return escape(str(value))


def admin_subject(reservation: Reservation) -> str:
    return f"Paiement reçu #{reservation.id} - {reservation.service_type}"


def client_subject(reservation: Reservation) -> str:
    return f"Paiement confirmé - StoreFlight (#{reservation.id})"


def render_admin_email(reservation: Reservation) -> str:
    """Full reservation snapshot for the operator."""

    rows = [
        ("Nom", reservation.full_name),
        ("Téléphone", reservation.phone),
        ("Email", reservation.email),
        ("Service", reservation.service_type),
        ("De", reservation.from_city),
        ("Vers", reservation.to_city),
        ("Check-in", reservation.check_in),
        ("Check-out", reservation.check_out),
        ("Voyageurs", reservation.travelers),
        ("Notes", reservation.notes),
        ("Acompte", f"{reservation.deposit_amount:.2f} {reservation.currency}"),
        ("Commande PayPal", reservation.paypal_order_id),
        ("Capture PayPal", reservation.paypal_capture_id),
        ("Statut", reservation.status),
    ]
    lines = "\n".join(f"      <p><b>{label} :</b> {_v(value)}</p>" for label, value in rows)
    return (
        '<div style="font-family:Arial,sans-serif;line-height:1.5">\n'
        f"      <h2>Paiement reçu #{reservation.id}</h2>\n"
        f"{lines}\n"
        "    </div>"
    )


def render_client_email(reservation: Reservation) -> str:
    """Short confirmation for the customer."""

    return (
        '<div style="font-family:Arial,sans-serif;line-height:1.5">\n'
        "      <h2>Paiement confirmé</h2>\n"
        f"      <p>Bonjour <b>{_v(reservation.full_name)}</b>,</p>\n"
        "      <p>Nous avons bien reçu votre acompte, votre réservation est enregistrée.</p>\n"
        f"      <p><b>Service :</b> {_v(reservation.service_type)}</p>\n"
        f"      <p><b>Référence :</b> #{reservation.id}</p>\n"
        f"      <p><b>Montant :</b> {reservation.deposit_amount:.2f} {_v(reservation.currency)}</p>\n"
        f"      <p><b>Statut :</b> {_v(reservation.status)}</p>\n"
        "      <p>Merci pour votre confiance.</p>\n"
        "    </div>"
    )
