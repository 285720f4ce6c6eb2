"""
Email Composition
=================

Pure helpers for turning the email-sender form into provider payloads:
recipient parsing, address validation and per-recipient placeholders.
"""

import re

_VALID_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_VALID_NAMED_FROM = re.compile(r'^.+\s*<[^\s@]+@[^\s@]+\.[^\s@]+>$')

_EMAIL_PLACEHOLDER = re.compile(r'\{\{email\}\}', re.IGNORECASE)
_NAME_PLACEHOLDER = re.compile(r'\{\{name\}\}', re.IGNORECASE)


def parse_emails(value):
    """Comma-separated addresses, blanks dropped"""
    return [e.strip() for e in (value or '').split(',') if e.strip()]


def parse_names(value):
    # Blank entries are kept so names stay aligned with addresses
    return [n.strip() for n in (value or '').split(',')]


def build_recipients(emails, names):
    recipients = []
    for index, email in enumerate(emails):
        name = names[index] if index < len(names) else None
        recipients.append({'email': email, 'name': name or None})
    return recipients


def replace_placeholders(content, email, name=None):
    """Substitute {{email}} and {{name}}; a missing name becomes the address's local part"""
    if not content:
        return content
    display_name = name or email.split('@')[0]
    result = _EMAIL_PLACEHOLDER.sub(lambda _: email, content)
    return _NAME_PLACEHOLDER.sub(lambda _: display_name, result)


def is_valid_email(email):
    return bool(email) and bool(_VALID_EMAIL.match(email))


def is_valid_from(value):
    """Accept 'email@domain.com' or 'Display Name <email@domain.com>'"""
    if not value:
        return False
    return bool(_VALID_EMAIL.match(value) or _VALID_NAMED_FROM.match(value))


def prepare_email(form, recipient, cc_emails):
    """Provider payload for one recipient"""
    email = recipient['email']
    name = recipient.get('name')
    params = {
        'from': form['from'],
        'to': email,
        'subject': replace_placeholders(form['subject'], email, name),
        'html': replace_placeholders(form['html_content'], email, name),
    }
    if cc_emails:
        params['cc'] = list(cc_emails)
    if form.get('plain_text'):
        params['text'] = replace_placeholders(form['plain_text'], email, name)
    return params
