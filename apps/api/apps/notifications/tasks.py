"""
Celery tasks for transactional emails.
"""
import logging
import smtplib

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from apps.core.observability import metrics

logger = logging.getLogger(__name__)


def _send(template, subject, recipient, context):
    """Render ``notifications/<template>.txt`` and send it."""
    context = {
        'dashboard_url': settings.DASHBOARD_URL,
        'support_email': settings.SUPPORT_EMAIL,
        **context,
    }
    body = render_to_string(f'notifications/{template}.txt', context)
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient])
    metrics.emails_sent_total.labels(template=template, result='sent').inc()
    logger.info(
        'Email sent',
        extra={'event': 'email_sent', 'template': template}
    )


@shared_task(
    name='apps.notifications.tasks.send_registration_email',
    autoretry_for=(smtplib.SMTPException, ConnectionError),
    retry_backoff=True,
    max_retries=3,
)
def send_registration_email(user_id):
    """Welcome email after sign-up."""
    from apps.authz.models import User

    user = User.objects.filter(pk=user_id).first()
    if user is None:
        logger.warning('Registration email skipped: user not found', extra={'user_ref': str(user_id)})
        return None

    role = user.primary_role
    role_label = 'Doctor' if role == 'doctor' else 'Patient'
    _send(
        'registration',
        f'Welcome {user.full_name}! Your {role_label} account is ready',
        user.email,
        {'name': user.full_name, 'role': role, 'role_label': role_label},
    )
    return user.email


@shared_task(
    name='apps.notifications.tasks.send_verification_status_email',
    autoretry_for=(smtplib.SMTPException, ConnectionError),
    retry_backoff=True,
    max_retries=3,
)
def send_verification_status_email(certificate_id):
    """Tell a doctor that an admin approved or rejected their verification."""
    from apps.doctors.models import DoctorCertificate

    certificate = DoctorCertificate.objects.select_related('doctor').filter(pk=certificate_id).first()
    if certificate is None:
        return None

    doctor = certificate.doctor
    subject = (
        'Your Jeewaka profile is verified'
        if certificate.is_verified
        else 'Your Jeewaka verification needs attention'
    )
    _send(
        'verification_status',
        subject,
        doctor.email,
        {
            'doctor_name': doctor.name,
            'is_verified': certificate.is_verified,
            'comment': certificate.comment_from_admin,
        },
    )
    return doctor.email


@shared_task(
    name='apps.notifications.tasks.send_session_created_email',
    autoretry_for=(smtplib.SMTPException, ConnectionError),
    retry_backoff=True,
    max_retries=3,
)
def send_session_created_email(session_id):
    """Confirm a newly published session to its doctor."""
    from apps.scheduling.models import Session

    session = (
        Session.objects.select_related('doctor', 'hospital')
        .prefetch_related('time_slots')
        .filter(pk=session_id)
        .first()
    )
    if session is None:
        return None

    _send(
        'session_created',
        f'Session created for {session.date:%B %d, %Y}',
        session.doctor.email,
        {
            'doctor_name': session.doctor.name,
            'session_type': session.get_type_display().lower(),
            'session_date': session.date,
            'hospital': session.hospital,
            'meeting_link': session.meeting_link,
            'time_slots': list(session.time_slots.order_by('position')),
            'manage_url': f'{settings.DASHBOARD_URL}/sessions/{session.pk}',
        },
    )
    return session.doctor.email
