"""CSV/JSON export of task listings and the report payload."""
import csv
import io
import json

from .tasks import serialize_task
from .utils import format_dt

CSV_FIELDS = ['id', 'title', 'description', 'priority', 'completed', 'category', 'createdAt']
# BOM lets spreadsheet apps detect UTF-8
UTF8_BOM = '\ufeff'


def tasks_to_csv(tasks) -> str:
    buf = io.StringIO()
    buf.write(UTF8_BOM)
    writer = csv.writer(buf, delimiter=';', lineterminator='\r\n')
    writer.writerow(CSV_FIELDS)
    for t in tasks:
        writer.writerow([
            t.id,
            t.title,
            t.description or '',
            t.priority,
            'true' if t.completed else 'false',
            t.category,
            format_dt(t.created_at) or '',
        ])
    return buf.getvalue()


def tasks_to_json(tasks) -> str:
    return json.dumps([serialize_task(t) for t in tasks], ensure_ascii=False, indent=2)


def report_payload(stats: dict) -> dict:
    """JSON-ready copy of ``tasks.summary`` output."""
    out = {k: v for k, v in stats.items() if k != 'latest'}
    out['by_completion'] = {'completed': stats['completed'], 'pending': stats['pending']}
    out['latest'] = [serialize_task(t) for t in stats.get('latest', [])]
    return out
