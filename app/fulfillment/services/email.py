"""
Email service for order notices.

Renders a Django template pair ({template_name}.html and .txt) and sends it
through the configured EMAIL_BACKEND.

Configuration:
    - EMAIL_BACKEND
    - EMAIL_HOST, EMAIL_PORT
    - DEFAULT_FROM_EMAIL

Usage:
    from fulfillment.services.email import EmailService

    EmailService.send(
        to="ana@example.com",
        subject="Your purchase is confirmed",
        template_name="fulfillment/emails/purchase_confirmation",
        context={"order": order},
    )
"""

from __future__ import annotations

import logging
import smtplib

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from fulfillment.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """
    Template email sending.

    Features:
        - HTML + plain text alternatives
        - Plain text falls back to the stripped HTML template
        - Reply-to support
    """

    @staticmethod
    def render(template_name: str, context: dict) -> tuple[str, str | None]:
        """
        Render the text and HTML bodies for a template pair.

        Raises:
            DeliveryError: Neither template exists
        """
        try:
            html_content = render_to_string(f"{template_name}.html", context)
        except TemplateDoesNotExist:
            html_content = None

        try:
            text_content = render_to_string(f"{template_name}.txt", context)
        except TemplateDoesNotExist:
            if html_content is None:
                raise DeliveryError(
                    f"No template found for {template_name}",
                    "template_missing",
                ) from None
            text_content = strip_tags(html_content)

        return text_content, html_content

    @staticmethod
    def send(
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict,
        from_email: str | None = None,
        reply_to: str | None = None,
    ) -> bool:
        """
        Send email using a template.

        Args:
            to: Recipient email address(es)
            subject: Email subject line
            template_name: Name of template (without extension)
            context: Template context variables
            from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
            reply_to: Reply-to address

        Returns:
            True if email was sent successfully

        Raises:
            DeliveryError: Template is missing
        """
        if isinstance(to, str):
            to = [to]

        text_content, html_content = EmailService.render(template_name, context)

        email = EmailMultiAlternatives(
            subject=subject,
            body=text_content,
            from_email=from_email or settings.DEFAULT_FROM_EMAIL,
            to=to,
            reply_to=[reply_to] if reply_to else None,
        )
        if html_content:
            email.attach_alternative(html_content, "text/html")

        try:
            email.send(fail_silently=False)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True
