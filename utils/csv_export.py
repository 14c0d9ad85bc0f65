import csv
from datetime import date
from io import StringIO
from typing import Iterable, Optional

USERBASE_HEADER = ["Name", "Phone Number", "City"]
UTF8_BOM = "\ufeff"


def build_userbase_csv(records: Iterable) -> Optional[str]:
    """Customer export: one quoted row per record with a phone number, BOM-prefixed for spreadsheets.

    Returns None when no record has a phone number.
    """
    rows = [
        [record.name or "", record.phone.strip(), record.city or ""]
        for record in records
        if record.phone and record.phone.strip()
    ]
    if not rows:
        return None

    buffer = StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(USERBASE_HEADER)
    writer.writerows(rows)
    return UTF8_BOM + buffer.getvalue()


def userbase_filename(start: Optional[date], end: Optional[date]) -> str:
    start_text = start.isoformat() if start else "all"
    end_text = end.isoformat() if end else date.today().isoformat()
    return f"userbase_{start_text}_to_{end_text}.csv"
