"""
CSV import/export for reference data.

Imports validate each row with a serializer, skip rows that already exist
and collect per-row errors instead of aborting the upload.
"""
import csv
import io
import logging

from django.db import transaction
from django.http import HttpResponse

from common.exceptions import DomainError

logger = logging.getLogger(__name__)


def csv_response(filename, header, rows):
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'

    writer = csv.writer(response)
    writer.writerow(header)
    count = 0
    for row in rows:
        writer.writerow(row)
        count += 1

    logger.info(f"Exported {count} rows to {filename}")
    return response


def read_upload(upload):
    """Rows of an uploaded CSV file as dicts keyed by lowercased header."""
    if upload is None:
        raise DomainError('A CSV file is required')

    try:
        text = io.TextIOWrapper(upload.file, encoding='utf-8-sig')
        reader = csv.DictReader(text)
        rows = [
            {(key or '').strip().lower(): (value or '').strip() for key, value in row.items()}
            for row in reader
        ]
    except (UnicodeDecodeError, csv.Error) as e:
        raise DomainError(f'Unreadable CSV file: {e}')

    return rows


def import_rows(rows, serializer_class, exists, on_created=None, context=None):
    """
    Create one record per valid row.

    ``exists(row)`` marks duplicates, which are skipped. Row numbers in
    ``errors`` count the header as row 1.
    """
    result = {'imported': 0, 'skipped': 0, 'errors': []}

    for number, row in enumerate(rows, start=2):
        if exists(row):
            result['skipped'] += 1
            continue

        serializer = serializer_class(data=row, context=context or {})
        if not serializer.is_valid():
            result['errors'].append({'row': number, 'errors': serializer.errors})
            continue

        with transaction.atomic():
            instance = serializer.save()
            if on_created is not None:
                on_created(instance)
        result['imported'] += 1

    logger.info(
        f"Imported {result['imported']} {serializer_class.Meta.model.__name__} rows, "
        f"skipped {result['skipped']}, {len(result['errors'])} errors"
    )
    return result
