"""Registration CSV exports."""

import csv
import io

EXPORT_COLUMNS = [
    'id', 'email', 'first_name', 'last_name', 'is_qualified', 'is_completed',
    'submission_type', 'priority_level', 'engagement_pool', 'last_action',
    'last_email_sent_code', 'next_email_date', 'created_at', 'updated_at',
]


def _cell(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return '' if value is None else value


def export_registrations_csv(registrations):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for registration in registrations:
        writer.writerow([_cell(registration.get(column)) for column in EXPORT_COLUMNS])
    return output.getvalue()
