from flask import current_app
from markupsafe import escape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.rest import Client

from ..errors import ChannelNotConfigured

URGENCY_COLORS = {
    'critical': '#d32f2f',
    'urgent': '#f57c00',
    'moderate': '#fbc02d',
    'low': '#388e3c',
    'routine': '#1976d2',
}


def detail_url(submission_id):
    base = (current_app.config.get('FRONTEND_URL') or '').rstrip('/')
    return f"{base}/recording/{submission_id}"


def _responder_name(submission):
    r = submission.responder
    return r.full_name if r is not None else 'Unknown'


def render_sms(submission, reviewer) -> str:
    summary = (submission.summary or 'Summary not available')[:100]
    return (
        f"EMERGENCY ALERT - Dr. {reviewer.last_name}\n\n"
        f"Patient Summary: {summary}...\n\n"
        f"Urgency: {submission.urgency_level} (risk {submission.risk_score}/10)\n"
        f"EMT: {_responder_name(submission)}\n\n"
        f"View full details at: {detail_url(submission.id)}\n\n"
        "Reply STOP to unsubscribe"
    )


def render_email(submission, reviewer):
    subject = f"Emergency Alert - Patient Summary for Dr. {reviewer.last_name}"
    urgency = submission.urgency_level or 'unknown'
    color = URGENCY_COLORS.get(urgency, '#666')
    created = submission.created_at.strftime('%Y-%m-%d %H:%M') if submission.created_at else ''
    html = f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #d32f2f;">EMERGENCY ALERT</h2>
  <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px;">
    <h3>Patient Summary</h3>
    <p style="white-space: pre-wrap;">{escape(submission.summary or 'Summary not available')}</p>
  </div>
  <p><strong>Urgency Level:</strong> <span style="color: {color};">{escape(urgency.upper())}</span></p>
  <p><strong>Chief Complaint:</strong> {escape(submission.chief_complaint or '')}</p>
  <p><strong>Critical Info:</strong> {escape(submission.critical_info or '')}</p>
  <p><strong>EMT:</strong> {escape(_responder_name(submission))}</p>
  <p><strong>Time:</strong> {created}</p>
  <p><a href="{detail_url(submission.id)}">View Full Details</a></p>
</div>"""
    return subject, html


def send_sms(to_phone, body):
    cfg = current_app.config
    if not (cfg.get('TWILIO_ACCOUNT_SID') and cfg.get('TWILIO_AUTH_TOKEN') and cfg.get('TWILIO_FROM_NUMBER')):
        raise ChannelNotConfigured('Twilio credentials are not configured')
    if not to_phone:
        raise ChannelNotConfigured('reviewer has no phone number')
    client = Client(cfg['TWILIO_ACCOUNT_SID'], cfg['TWILIO_AUTH_TOKEN'])
    message = client.messages.create(from_=cfg['TWILIO_FROM_NUMBER'], body=body, to=to_phone)
    current_app.logger.info('SMS sent to %s sid=%s', to_phone, message.sid)
    return message.sid


def send_email(to_email, subject, html):
    cfg = current_app.config
    if not cfg.get('SENDGRID_API_KEY'):
        raise ChannelNotConfigured('SENDGRID_API_KEY is not configured')
    if not to_email:
        raise ChannelNotConfigured('reviewer has no email address')
    sg = SendGridAPIClient(api_key=cfg['SENDGRID_API_KEY'])
    message = Mail(from_email=(cfg['MAIL_FROM'], cfg['MAIL_FROM_NAME']),
                   to_emails=to_email,
                   subject=subject,
                   html_content=html)
    resp = sg.send(message)
    current_app.logger.info('Email sent to %s status=%s', to_email, resp.status_code)
    return resp.status_code, getattr(resp, 'headers', None)
