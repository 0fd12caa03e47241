from storefront.services.email_service import send_email
from storefront.utils.template import render_template
from storefront.config import settings


def send_user_email(template, subject, to, to_name=None, **ctx):
    html = render_template(template, **ctx)
    return send_email(to=to, subject=subject, html=html, to_name=to_name)


def send_admin_email(template, subject, **ctx):
    html = render_template(template, **ctx)
    return send_email(to=settings.admin_emails, subject=subject, html=html)
