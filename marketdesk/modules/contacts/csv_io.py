"""
Contacts CSV
============

Reading contact CSV uploads and writing contact exports.
Header names are matched case-insensitively and a few common spellings
are accepted for each column. Tags live comma-separated in one cell.
"""

import csv
import io

HEADER_ALIASES = {
    'email': 'email',
    'e_mail': 'email',
    'email_address': 'email',
    'first_name': 'first_name',
    'firstname': 'first_name',
    'first': 'first_name',
    'last_name': 'last_name',
    'lastname': 'last_name',
    'last': 'last_name',
    'surname': 'last_name',
    'tags': 'tags',
    'tag': 'tags',
}

EXPORT_COLUMNS = [
    'email', 'first_name', 'last_name', 'status', 'engagement_level',
    'tags', 'source', 'created_at',
]


def _canonical_header(name):
    key = (name or '').strip().lower().replace('-', '_').replace(' ', '_')
    return HEADER_ALIASES.get(key)


def parse_contacts_csv(text):
    """Rows as dicts with email/first_name/last_name/tags keys; unknown columns are ignored

    Each row also carries ``row``, its line number in the file, so that
    errors still point at the right line when blank rows are skipped.
    """
    if text.startswith('\ufeff'):
        text = text[1:]

    reader = csv.reader(io.StringIO(text))
    try:
        headers = next(reader)
    except StopIteration:
        return []

    columns = [_canonical_header(h) for h in headers]
    rows = []
    for values in reader:
        if not any(v.strip() for v in values):
            continue
        row = {'email': '', 'first_name': '', 'last_name': '', 'tags': ''}
        for column, value in zip(columns, values):
            if column:
                row[column] = value.strip()
        row['row'] = reader.line_num
        rows.append(row)
    return rows


def export_contacts_csv(contacts):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for contact in contacts:
        writer.writerow([
            ', '.join(contact.get('tags') or []) if column == 'tags' else (contact.get(column) or '')
            for column in EXPORT_COLUMNS
        ])
    return output.getvalue()
