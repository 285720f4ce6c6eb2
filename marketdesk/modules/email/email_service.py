"""
Email Service Module
====================

Ad-hoc email sending through the Resend API.

A send request comes from the email-sender form: a From header, a
comma-separated To list with an optional positional list of names, an
optional CC list, a subject, an HTML body and an optional plain-text body.
Every address is validated before anything is sent. One recipient goes
through ``resend.Emails.send``; several go through ``resend.Batch.send``
with placeholders filled in per recipient.

Configuration (set in Flask app.config):
    RESEND_API_KEY: Your Resend API key
    EMAIL_ADDRESS: Default sender when the form leaves From empty
"""

import logging
from typing import Any, Dict, List, Optional

import resend

from marketdesk.core.results import ActionResult, PARTIAL, action
from .compose import (
    parse_emails, parse_names, build_recipients, replace_placeholders,
    is_valid_email, is_valid_from, prepare_email,
)

logger = logging.getLogger(__name__)

# Resend accepts at most 100 emails per batch call
MAX_BATCH_SIZE = 100

INVALID_FROM_MESSAGE = (
    "Invalid 'From' field format. Use 'Display Name <email@domain.com>' or 'email@domain.com'"
)

# Form fields that must arrive as text when present
TEXT_FIELDS = ('from', 'to', 'names', 'cc', 'subject', 'html_content', 'plain_text')


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'email', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


def _failed(email, error):
    return {'email': email, 'success': False, 'message_id': None, 'error': error}


def _sent(email, message_id):
    return {'email': email, 'success': True, 'message_id': message_id, 'error': None}


def _rejected(error):
    """A request refused before any provider call"""
    return ActionResult.validation(error, total_sent=0, total_failed=0, results=[])


class EmailService:
    """
    Resend-backed sender for the email-sender page.

    Configuration is read in ``init_app``; sending without an API key
    marks every recipient as failed instead of raising.
    """

    def __init__(self, app=None):
        self.api_key = None
        self.sender_email = None

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize email service with Flask app configuration"""
        self.sender_email = app.config.get('EMAIL_ADDRESS', 'onboarding@resend.dev')
        self.api_key = app.config.get('RESEND_API_KEY')

        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured - email sending disabled")
            return

        resend.api_key = self.api_key
        logger.info(f"Resend API client initialized (sender: {self.sender_email})")

    def _require_client(self):
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY is not configured")

    # ===================
    # SENDING
    # ===================

    @action('email', 'Failed to send emails', total_sent=0, total_failed=0, results=[])
    def send_emails(self, form: Dict[str, Any]) -> ActionResult:
        """
        Validate the form and send to every recipient.

        Returns an ActionResult whose data holds total_sent, total_failed
        and one result entry per recipient, in recipient order.
        """
        for key in TEXT_FIELDS:
            value = form.get(key)
            if value is not None and not isinstance(value, str):
                return _rejected(f"Field '{key}' must be a string")

        from_field = (form.get('from') or '').strip() or self.sender_email
        if not is_valid_from(from_field):
            return _rejected(INVALID_FROM_MESSAGE)
        if not (form.get('to') or '').strip():
            return _rejected("At least one recipient email is required")
        if not form.get('subject'):
            return _rejected("Subject is required")
        if not form.get('html_content'):
            return _rejected("HTML content is required")

        emails = parse_emails(form.get('to'))
        names = parse_names(form.get('names'))
        cc_emails = parse_emails(form.get('cc'))

        if not emails:
            return _rejected("At least one recipient email is required")

        invalid = [e for e in emails if not is_valid_email(e)]
        if invalid:
            return _rejected(f"Invalid email addresses: {', '.join(invalid)}")

        invalid_cc = [e for e in cc_emails if not is_valid_email(e)]
        if invalid_cc:
            return _rejected(f"Invalid CC email addresses: {', '.join(invalid_cc)}")

        prepared_form = dict(form, **{'from': from_field})
        recipients = build_recipients(emails, names)

        if len(recipients) == 1:
            results = [self._send_single(prepared_form, recipients[0], cc_emails)]
        else:
            results = []
            for start in range(0, len(recipients), MAX_BATCH_SIZE):
                chunk = recipients[start:start + MAX_BATCH_SIZE]
                results.extend(self._send_batch(prepared_form, chunk, cc_emails))

        total_sent = sum(1 for r in results if r['success'])
        total_failed = len(results) - total_sent

        if total_failed:
            logger.warning(f"Email send completed with errors: {total_sent} sent, {total_failed} failed")
        else:
            logger.info(f"Email sent successfully to {total_sent} recipient(s): {form.get('subject')}")
        _db_log('info' if not total_failed else 'warning', 'Email send completed', {
            'subject': form.get('subject'), 'sent': total_sent, 'failed': total_failed,
        })

        return ActionResult(
            success=total_failed == 0,
            error=f"{total_failed} of {len(results)} email(s) failed to send" if total_failed else None,
            kind=PARTIAL if total_failed else None,
            data={'total_sent': total_sent, 'total_failed': total_failed, 'results': results},
        )

    def _send_single(self, form, recipient, cc_emails):
        """One recipient through resend.Emails.send"""
        email = recipient['email']
        try:
            self._require_client()
            r = resend.Emails.send(prepare_email(form, recipient, cc_emails))
        except Exception as e:
            logger.error(f"Error sending to {email}: {e}")
            return _failed(email, str(e))

        if r and r.get('id'):
            logger.debug(f"Email sent successfully to: {email}, ID: {r['id']}")
            return _sent(email, r['id'])

        logger.error(f"Resend error for {email}: {r}")
        return _failed(email, "Failed to send")

    def _send_batch(self, form, recipients, cc_emails) -> List[Dict[str, Any]]:
        """
        Up to MAX_BATCH_SIZE recipients through resend.Batch.send.

        Results are matched to recipients by position in the response.
        A recipient with no entry at its position counts as failed.
        """
        try:
            self._require_client()
            response = resend.Batch.send([prepare_email(form, r, cc_emails) for r in recipients])
        except Exception as e:
            logger.error(f"Batch send of {len(recipients)} emails failed: {e}")
            return [_failed(r['email'], str(e)) for r in recipients]

        entries = (response or {}).get('data') or []
        results = []
        for index, recipient in enumerate(recipients):
            entry = entries[index] if index < len(entries) else None
            message_id = entry.get('id') if entry else None
            if message_id:
                results.append(_sent(recipient['email'], message_id))
            else:
                results.append(_failed(recipient['email'], "Failed to send"))
        return results

    # ===================
    # PREVIEW
    # ===================

    def preview_email(self, html_content: str, subject: str, sample_email: str,
                      sample_name: Optional[str] = None) -> Dict[str, str]:
        """Subject and HTML as one recipient would see them"""
        return {
            'html': replace_placeholders(html_content or '', sample_email, sample_name),
            'subject': replace_placeholders(subject or '', sample_email, sample_name),
        }


email_service = EmailService()
